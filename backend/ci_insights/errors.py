"""
Error taxonomy shared by the upstream client, the sync services and the API.

UpstreamHttpError / UpstreamGraphQLError come from the GitHub client.
MissingParameterError means the caller left out a required input.
NoDataError means nothing has been synced yet for the requested view, so the
API answers with a "needs sync" payload instead of a failure.
"""


class CIInsightsError(Exception):
    """Base class for all service errors."""


class UpstreamHttpError(CIInsightsError):
    def __init__(self, status: int, body: str, url: str = ""):
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"GitHub API error: {status} {url} - {body[:500]}")


class UpstreamGraphQLError(CIInsightsError):
    def __init__(self, messages: list[str]):
        self.messages = messages
        super().__init__(f"GraphQL errors: {', '.join(messages)}")


class MissingParameterError(CIInsightsError):
    def __init__(self, parameter: str, detail: str | None = None):
        self.parameter = parameter
        super().__init__(detail or f"{parameter} is required")


class NoDataError(CIInsightsError):
    def __init__(self, message: str = "No data available. Please trigger a sync first."):
        super().__init__(message)
