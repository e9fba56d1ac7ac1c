class LivenessError(Exception):
    """Base class for errors raised by the liveness package."""


class ResourceAcquisitionError(LivenessError):
    """The camera or the face landmarker could not be acquired."""


class SessionStateError(LivenessError):
    """A command was issued that is not valid in the session's current status."""


class LandmarkSetError(LivenessError, ValueError):
    """A landmark set does not follow the 478-point face mesh topology."""
