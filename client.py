"""
HTTP client for the Academy Admissions API

Every call is a single request/response round trip: no retries and no
cancellation. Failures surface as ApiError carrying the backend's message
when it sent one.
"""

import os
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"


class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _backend_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    detail = body.get("detail") or body.get("message")
    return detail if isinstance(detail, str) else None


class AcademyClient:
    def __init__(self, http: Optional[httpx.Client] = None, base_url: Optional[str] = None, timeout: float = 10.0):
        if http is None:
            http = httpx.Client(base_url=base_url or os.getenv("ACADEMY_API_URL", DEFAULT_BASE_URL), timeout=timeout)
        self.http = http

    def close(self):
        self.http.close()

    def _request(self, method: str, path: str, fallback: str, **kwargs) -> dict:
        try:
            response = self.http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise ApiError(fallback) from e
        if response.status_code >= 400:
            message = _backend_message(response) or fallback
            logger.error("%s %s returned %s: %s", method, path, response.status_code, message)
            raise ApiError(message, response.status_code)
        return response.json()

    # --------- Reference data ---------

    def list_sessions(self, status: Optional[str] = None) -> list:
        params = {"status": status} if status else None
        return self._request("GET", "/api/sessions", "Failed to fetch sessions", params=params).get("data", [])

    def list_classes(self, status: Optional[str] = "active") -> list:
        params = {"status": status} if status else None
        return self._request("GET", "/api/classes", "Failed to fetch classes", params=params).get("data", [])

    def get_session_price(self, session_id: str) -> Optional[float]:
        """Configured price for a session, or None.

        Any failure falls back to None (manual pricing) instead of raising.
        """
        try:
            result = self._request("GET", f"/api/config/session-price/{session_id}", "Failed to fetch session price")
        except ApiError:
            logger.warning("Session price unavailable for %s, using manual fee", session_id)
            return None
        data = result.get("data") or {}
        price = data.get("price") or 0
        if result.get("success") and data.get("found") and price > 0:
            logger.info("Session price found for %s: %s", session_id, price)
            return float(price)
        logger.info("No session price configured for %s", session_id)
        return None

    # --------- Students ---------

    def create_student(self, payload: dict) -> dict:
        return self._request("POST", "/api/students", "Failed to save student admission", json=payload)["data"]

    def list_students(self, student_status: Optional[str] = None) -> list:
        params = {"studentStatus": student_status} if student_status else None
        return self._request("GET", "/api/students", "Failed to fetch students", params=params).get("data", [])

    def collect_fee(self, student_id: str, amount: float, month: str, payment_method: str = "CASH", notes: Optional[str] = None) -> dict:
        body = {"amount": amount, "month": month, "paymentMethod": payment_method}
        if notes:
            body["notes"] = notes
        return self._request("POST", f"/api/students/{student_id}/collect-fee", "Failed to collect fee", json=body)["data"]

    # --------- Registrations ---------

    def list_pending(self) -> list:
        return self._request("GET", "/api/public/pending", "Failed to fetch pending registrations").get("data", [])

    def get_pending(self, student_id: str) -> dict:
        return self._request("GET", f"/api/public/pending/{student_id}", "Failed to load pending student")["data"]

    def approve(self, student_id: str, body: dict) -> dict:
        return self._request("POST", f"/api/public/approve/{student_id}", "Failed to approve", json=body)["data"]

    def reject(self, student_id: str, reason: Optional[str] = None) -> dict:
        return self._request("DELETE", f"/api/public/reject/{student_id}", "Failed to reject", json={"reason": reason})
