"""
Auto-follow policy for the message viewport.
"""

from typing import Callable, Optional

from panel_chat.constants import AUTO_FOLLOW_THRESHOLD


class ScrollPolicy:
    """
    Keeps the viewport pinned to the newest message while the user is near
    the bottom, and leaves it alone once they scroll away.
    """

    def __init__(self, threshold: int = AUTO_FOLLOW_THRESHOLD,
                 scroll_to_bottom: Optional[Callable[[], None]] = None):
        self.threshold = threshold
        self.scroll_to_bottom = scroll_to_bottom
        self.auto_follow = True

    def on_scroll(self, distance_from_bottom: float) -> bool:
        """Recompute auto-follow from the viewport's distance to the bottom."""
        self.auto_follow = distance_from_bottom < self.threshold
        return self.auto_follow

    def on_store_mutated(self) -> bool:
        """Scroll to the bottom after a log change if following. Returns whether it did."""
        if not self.auto_follow:
            return False
        if self.scroll_to_bottom is not None:
            self.scroll_to_bottom()
        return True
