"""Credential rotation with password history."""

import logging

from wbs_tracker.config import DEFAULT_BCRYPT_ROUNDS
from wbs_tracker.core.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from wbs_tracker.core.passwords import hash_password, validate_password_policy, verify_password
from wbs_tracker.core.repositories import UserRepository
from wbs_tracker.db.models import PASSWORD_HISTORY_MAX

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, user_repository: UserRepository, rounds: int = DEFAULT_BCRYPT_ROUNDS):
        self._users = user_repository
        self._rounds = rounds

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        """Replace a user's password, refusing the current one and the last three.

        The replaced hash is pushed to the front of the history, which is
        capped at ``PASSWORD_HISTORY_MAX`` entries. ``must_change_password``
        is cleared. Nothing is written unless every check passes.
        """
        user = self._users.find_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")

        if not verify_password(current_password, user.password_hash):
            logger.info("Password change rejected for user %s: wrong current password", user_id)
            raise UnauthorizedError("Current password is incorrect")

        if verify_password(new_password, user.password_hash):
            raise ConflictError("New password must differ from the current password")

        history = user.password_history[:PASSWORD_HISTORY_MAX]
        for old_hash in history:
            if verify_password(new_password, old_hash):
                raise ConflictError("Password was used within the last 3 changes")

        if not validate_password_policy(new_password):
            raise ValidationError(
                "Password must be at least 8 characters and contain a letter and a digit"
            )

        new_hash = hash_password(new_password, rounds=self._rounds)
        new_history = [user.password_hash, *history][:PASSWORD_HISTORY_MAX]

        self._users.update(
            user_id,
            password_hash=new_hash,
            password_history=new_history,
            must_change_password=False,
        )
        logger.info("Password changed for user %s", user_id)

    def validate_first_login(self, user_id: int) -> bool:
        """Whether the user still has to replace an initial password."""
        user = self._users.find_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user.must_change_password
