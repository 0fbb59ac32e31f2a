"""Build GLIMPS Detect web UI links from an analysis result."""

from __future__ import annotations

from gdetect_sdk.exceptions import GDetectNoSIDError, GDetectNoTokenError
from gdetect_sdk.models import Result


def extract_token_view_url(endpoint: str, result: Result) -> str:
    """Token view URL: ``{endpoint}/expert/en/analysis-redirect/{token}``.

    Raises:
        GDetectNoTokenError: If *result* has no view token.
    """
    if not result.token:
        raise GDetectNoTokenError("no token in result")
    return f"{endpoint}/expert/en/analysis-redirect/{result.token}"


def extract_expert_view_url(endpoint: str, result: Result) -> str:
    """Expert view URL: ``{endpoint}/expert/en/analysis/advanced/{sid}``.

    Raises:
        GDetectNoSIDError: If *result* has no analysis SID.
    """
    if not result.sid:
        raise GDetectNoSIDError("no sid in result")
    return f"{endpoint}/expert/en/analysis/advanced/{result.sid}"
