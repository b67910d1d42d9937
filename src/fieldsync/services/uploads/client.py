"""Backend client for the employee uploads endpoint."""

import httpx
import structlog

from fieldsync.services.exceptions import (
    UploadNetworkError,
    UploadRateLimitError,
    UploadRejectedError,
    UploadServerError,
)

logger = structlog.get_logger(__name__)

UPLOAD_FILENAME = "upload.jpg"
UPLOAD_CONTENT_TYPE = "image/jpeg"


class EmployeeUploadsClient:
    """Multipart upload client for POST /api/employee-uploads."""

    def __init__(
        self,
        upload_url: str,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize uploads client.

        Args:
            upload_url: Full endpoint URL (e.g., http://localhost:4200/api/employee-uploads)
            timeout: Per-attempt timeout in seconds (default: 60)
            http_client: Shared client to send through; a short-lived client is
                created per request when omitted
        """
        self.upload_url = upload_url
        self.timeout = timeout
        self._http_client = http_client
        self.headers = {"Accept": "application/json"}

    @staticmethod
    def build_form(
        ticket_id: int,
        media_stage: str,
        latitude: float,
        longitude: float,
        uploaded_by: str,
        offline_employee_id: str | None = None,
    ) -> dict[str, str]:
        """Build the multipart text fields in the backend's naming."""
        form = {
            "ticket_id": str(ticket_id),
            "media_stage": media_stage,
            "latitude": str(float(latitude)),
            "longitude": str(float(longitude)),
            "uploaded_by": uploaded_by,
        }
        if offline_employee_id:
            form["offline_employee_id"] = offline_employee_id
        return form

    async def upload(
        self,
        image: bytes,
        ticket_id: int,
        media_stage: str,
        latitude: float,
        longitude: float,
        uploaded_by: str,
        offline_employee_id: str | None = None,
    ) -> int:
        """Upload one JPEG for a ticket.

        Args:
            image: JPEG bytes
            ticket_id: Owning ticket id
            media_stage: "pre", "post", or "" for customer uploads
            latitude: Capture latitude (0.0 if unavailable)
            longitude: Capture longitude (0.0 if unavailable)
            uploaded_by: Acting employee id
            offline_employee_id: Employee id recorded for offline captures

        Returns:
            HTTP status code of the (2xx) response

        Raises:
            TransientError: Network timeout, transport failure, rate limit (429), 5xx
            PermanentError: Any other non-2xx response
        """
        data = self.build_form(
            ticket_id, media_stage, latitude, longitude, uploaded_by, offline_employee_id
        )
        files = {"file": (UPLOAD_FILENAME, image, UPLOAD_CONTENT_TYPE)}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.upload_url,
                    headers=self.headers,
                    data=data,
                    files=files,
                    timeout=self.timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.upload_url, headers=self.headers, data=data, files=files
                    )
        except httpx.TimeoutException as e:
            raise UploadNetworkError(f"Request timeout after {self.timeout}s: {str(e)}")
        except httpx.TransportError as e:
            raise UploadNetworkError(f"Network error: {str(e)}")

        if response.is_success:
            return response.status_code

        # Body is logged only, never parsed
        logger.warning(
            "upload.failed_response",
            ticket_id=ticket_id,
            status_code=response.status_code,
            body=response.text[:500],
        )

        # Error classification
        if response.status_code == 429:
            raise UploadRateLimitError(f"Rate limit exceeded: {response.text[:200]}")
        elif response.status_code >= 500:
            raise UploadServerError(
                f"Server error ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )
        raise UploadRejectedError(
            f"Upload rejected ({response.status_code}): {response.text[:200]}",
            status_code=response.status_code,
        )
