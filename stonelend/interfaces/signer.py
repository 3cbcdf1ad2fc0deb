"""Signing client protocol — wallet-side transaction submission."""
from typing import Protocol, Sequence

from ..models import BroadcastResult, Instruction


class SigningClient(Protocol):
    """Abstract interface for a wallet that signs and broadcasts instructions.

    ``supports_multi_instruction`` tells whether several instructions can be
    composed into one atomic transaction on the target chain.
    """

    @property
    def supports_multi_instruction(self) -> bool: ...

    async def execute(self, sender: str, instruction: Instruction) -> BroadcastResult: ...

    async def execute_multiple(
        self, sender: str, instructions: Sequence[Instruction]
    ) -> BroadcastResult: ...
