# Exceptions raised by the agent. Soft conditions (no gpg, no gzip, hook veto,
# bad snapshot file) never get here; they degrade to a fallback value.


class AgentError(Exception):
    pass


class ConfigError(AgentError):
    pass


class SubmissionError(AgentError):
    # Fatal conditions of the submit task: no payload, no endpoint, bad JSON.
    pass


class DeliveryError(SubmissionError):
    def __init__(self, message, status=None, attempts=0):
        super().__init__(message)
        self.status = status
        self.attempts = attempts


class TransportError(AgentError):
    # Connection-level failure; the submission engine retries these.
    pass


class EnvelopeError(AgentError):
    pass
