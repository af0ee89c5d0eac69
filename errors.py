# errors.py
"""
FILE: errors.py
DESCRIPTION:
  Exceptions raised by the device model.
  - ConfigurationError and subclasses: fatal at construction/registration time.
  - PublishError: a broker publish that was not accepted.
"""


class ConfigurationError(Exception):
    """A device, function or connector was set up inconsistently."""


class DuplicateCapabilityError(ConfigurationError):
    pass


class DuplicateTopicError(ConfigurationError):
    pass


class DuplicateDeviceError(ConfigurationError):
    pass


class InvalidStepError(ConfigurationError, ValueError):
    pass


class PublishError(Exception):
    pass


class DiscoveryPublishError(PublishError):
    """Raised when a discovery message could not be published.

    Messages published earlier in the same batch are not retracted.
    """

    def __init__(self, topic, message=None):
        self.topic = topic
        super().__init__(message or f"Failed to publish discovery message to {topic}")
