"""
Interface to the user, as consumed by synchronization components.
"""
from __future__ import annotations

from typing import Protocol

__all__ = [
    "Prompter",
]


class Prompter(Protocol):
    """
    Asks the user questions and shows them messages. Implemented by the
    front end, e.g. the CLI.
    """

    async def confirm(
        self,
        title: str,
        body: str,
        affirm_label: str = "Do it",
        decline_label: str = "Cancel",
    ) -> bool:
        """
        Suspend until the user answers, returning `True` if they chose the
        affirmative option. There is no timeout.
        """
        ...

    def notify(self, message: str, duration: float | None = None) -> None:
        """
        Show a message without waiting for acknowledgement.
        """
        ...
