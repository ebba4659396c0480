"""Error taxonomy for the visual testing pipeline.

Run-setup errors (device lookup, boot, socket connect) abort a run. Per-scene
errors (capture, navigation, comparison) are caught by the stage that owns the
scene and recorded on its record or verdict.
"""

from __future__ import annotations


class VisualTestError(Exception):
    """Base class for all pipeline errors."""


class DeviceNotFound(VisualTestError):
    pass


class DeviceNotBooted(VisualTestError):
    pass


class DeviceBootTimeout(VisualTestError):
    pass


class AppLaunchError(VisualTestError):
    pass


class ConnectionTimeout(VisualTestError):
    pass


class NotConnected(VisualTestError):
    pass


class ProtocolTimeout(VisualTestError):
    pass


class NavigationTimeout(ProtocolTimeout):
    def __init__(self, scene_id: str, timeout: float):
        super().__init__(f"Scene '{scene_id}' did not render within {timeout:g}s")
        self.scene_id = scene_id
        self.timeout = timeout


class ProtocolBusy(VisualTestError):
    """Raised when a second request of a kind is issued while one is pending."""


class CaptureFailure(VisualTestError):
    pass


class ComparisonError(VisualTestError):
    pass


class DimensionMismatch(ComparisonError):
    def __init__(self, expected: tuple[int, int], actual: tuple[int, int]):
        super().__init__(
            f"Image dimensions don't match: {expected[0]}x{expected[1]} "
            f"vs {actual[0]}x{actual[1]}"
        )
        self.expected = expected
        self.actual = actual


class MissingBaselineDirectory(VisualTestError):
    pass


class EmptyBaselineSource(VisualTestError):
    pass


class UploadRejected(VisualTestError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
