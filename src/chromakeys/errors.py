"""
Error taxonomy for the chromakeys engine.

None of these are fatal: each one names a way the instrument degrades to
fewer input signals while keeping the same smoothing/simulation contract.
"""


class ChromakeysError(Exception):
    """Base class for engine errors."""


class CapabilityUnavailable(ChromakeysError):
    """The compute backend cannot run the field simulation.

    Recovered by switching to a non-simulated point cloud.
    """


class DeviceUnavailable(ChromakeysError):
    """A capture device (camera, microphone) was denied or is absent.

    Recovered by disabling the matching input port.
    """

    def __init__(self, device: str, reason: str = ""):
        self.device = device
        self.reason = reason
        message = f"{device} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class TransientRenderFailure(ChromakeysError):
    """A single frame failed to draw; the loop continues on the next tick."""
