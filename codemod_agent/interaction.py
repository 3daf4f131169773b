"""User-interaction collaborator."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class ConfirmationAnswer:
    confirmed: bool
    answer: str | None = None


class UserInteraction(ABC):
    """Every method is a suspension point of the dispatch loop."""

    @abstractmethod
    async def ask_user_for_confirmation(self, message: str, default_value: bool = False) -> bool: ...

    @abstractmethod
    async def ask_user_for_confirmation_with_answer(
        self,
        message: str,
        confirm_label: str,
        decline_label: str,
        default_value: bool = False,
    ) -> ConfirmationAnswer: ...

    @abstractmethod
    async def ask_user_for_input(self, prompt: str, placeholder: str | None = None) -> str | None:
        """Free-form answer, or None when the user has nothing more to say."""
        ...


class NonInteractive(UserInteraction):
    """
    Answers every question without a human.

    With `auto_approve` every confirmation is accepted, otherwise the
    default value is used. Input requests get no answer, which ends the
    conversation.
    """

    def __init__(self, auto_approve: bool = False):
        self.auto_approve = auto_approve

    async def ask_user_for_confirmation(self, message: str, default_value: bool = False) -> bool:
        confirmed = self.auto_approve or default_value
        logger.info(f"{message} -> {'yes' if confirmed else 'no'}")
        return confirmed

    async def ask_user_for_confirmation_with_answer(
        self,
        message: str,
        confirm_label: str,
        decline_label: str,
        default_value: bool = False,
    ) -> ConfirmationAnswer:
        confirmed = self.auto_approve or default_value
        logger.info(f"{message} -> {confirm_label if confirmed else decline_label}")
        return ConfirmationAnswer(confirmed)

    async def ask_user_for_input(self, prompt: str, placeholder: str | None = None) -> str | None:
        logger.info(prompt)
        return None


__all__ = ["ConfirmationAnswer", "NonInteractive", "UserInteraction"]
