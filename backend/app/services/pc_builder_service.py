"""
PC builder wizard state.

Walks the shopper through one component slot at a time and hands the
finished selection to the cart.
"""
import logging
from typing import Dict, List, Optional
from pydantic import BaseModel

from app.core.exceptions import InvalidOperationError
from app.models.product import PcPartType, Product
from app.schemas.cart import OperationResult

logger = logging.getLogger(__name__)


class BuildStep(BaseModel):
    """One component slot of the wizard."""
    type: PcPartType
    label: str
    description: str
    required: bool


BUILD_STEPS: List[BuildStep] = [
    BuildStep(type=PcPartType.CPU, label="Processor (CPU)", description="The brain of your PC", required=True),
    BuildStep(type=PcPartType.MOTHERBOARD, label="Motherboard", description="Connects all components", required=True),
    BuildStep(type=PcPartType.RAM, label="Memory (RAM)", description="For multitasking", required=True),
    BuildStep(type=PcPartType.GPU, label="Graphics Card", description="For gaming & visuals", required=False),
    BuildStep(type=PcPartType.STORAGE, label="Storage", description="SSD or HDD", required=True),
    BuildStep(type=PcPartType.PSU, label="Power Supply", description="Powers your system", required=True),
    BuildStep(type=PcPartType.CASE, label="Case", description="Houses everything", required=True),
    BuildStep(type=PcPartType.COOLING, label="Cooling", description="Keeps temps low", required=False),
]


class PCBuild:
    """Parts chosen so far and the step the shopper is on."""

    def __init__(self, steps: Optional[List[BuildStep]] = None):
        self.steps = steps or BUILD_STEPS
        self.current_step = 0
        self.selected: Dict[PcPartType, Optional[Product]] = {step.type: None for step in self.steps}

    @property
    def step(self) -> BuildStep:
        return self.steps[self.current_step]

    def go_to_step(self, index: int):
        if not 0 <= index < len(self.steps):
            raise InvalidOperationError(f"No build step {index}")
        self.current_step = index

    def parts_for_step(self, products: List[Product], step: Optional[BuildStep] = None) -> List[Product]:
        """In-stock products that fit the given (default: current) step."""
        step = step or self.step
        return [p for p in products if p.pc_part_type == step.type and p.stock_quantity > 0]

    def select_part(self, product: Product):
        """Fill the current step and move on to the next one, if any."""
        if product.pc_part_type != self.step.type:
            raise InvalidOperationError(
                f"{product.name} is not a {self.step.label} part"
            )
        self.selected[self.step.type] = product
        if self.current_step < len(self.steps) - 1:
            self.current_step += 1

    def remove_part(self, part_type: PcPartType):
        self.selected[part_type] = None

    def reset(self):
        self.selected = {step.type: None for step in self.steps}
        self.current_step = 0

    @property
    def selected_parts(self) -> List[Product]:
        return [part for part in self.selected.values() if part is not None]

    @property
    def total_price(self) -> float:
        return sum((part.effective_price for part in self.selected_parts), 0.0)

    @property
    def completed_steps(self) -> int:
        return sum(1 for step in self.steps if self.selected[step.type] is not None)

    @property
    def required_complete(self) -> bool:
        return all(self.selected[step.type] is not None for step in self.steps if step.required)

    @property
    def progress(self) -> float:
        """Fraction of steps filled, 0.0 to 1.0."""
        return self.completed_steps / len(self.steps)

    def compatibility_warnings(self) -> List[str]:
        """Non-blocking warnings about the current selection."""
        warnings = []
        cpu = self.selected.get(PcPartType.CPU)
        board = self.selected.get(PcPartType.MOTHERBOARD)

        if cpu and board:
            cpu_socket = cpu.specs.get("socket")
            board_socket = board.specs.get("socket")
            if cpu_socket and board_socket and cpu_socket.strip().lower() != board_socket.strip().lower():
                warnings.append(
                    f"{cpu.name} uses socket {cpu_socket} but {board.name} has socket {board_socket}"
                )

        return warnings

    async def add_all_to_cart(self, cart_service) -> List[OperationResult]:
        """
        Add one of every selected part to ``cart_service``.

        Raises:
            InvalidOperationError: nothing has been selected
        """
        parts = self.selected_parts
        if not parts:
            raise InvalidOperationError("Please select at least one part")

        results = [await cart_service.add_item(part, 1) for part in parts]
        added = sum(1 for result in results if result.success)
        logger.info(f"Added {added} of {len(parts)} build parts to cart")
        if added:
            cart_service.notifier.success(f"Added {added} parts to cart")
        return results
