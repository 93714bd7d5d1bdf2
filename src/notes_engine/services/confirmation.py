"""Two-step delete confirmation."""

from typing import Optional


class DeleteConfirmation:
    """Arms on the first delete request for a slug, confirms on the second.

    Only one slug can be armed at a time: a request for a different slug
    re-arms on that slug instead of deleting anything.
    """

    def __init__(self) -> None:
        self._armed: Optional[str] = None

    @property
    def armed(self) -> Optional[str]:
        return self._armed

    def request(self, slug: str) -> bool:
        """Register a delete request.

        Returns:
            True when the deletion should proceed (and disarms), False when
            this request only armed the confirmation.
        """
        if self._armed != slug:
            self._armed = slug
            return False
        self._armed = None
        return True

    def disarm(self) -> None:
        self._armed = None
