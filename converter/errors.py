"""
Exceptions surfaced by the converter service.

Each carries the HTTP status it maps to; the API renders them as
``{"error": message}``.
"""


class ConverterError(Exception):
    """Base exception for all converter errors"""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidRequestError(ConverterError):
    """Raised when request input fails validation"""

    status_code = 400


class JobNotFoundError(ConverterError):
    status_code = 404

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class FileNotFoundInStoreError(ConverterError):
    status_code = 404

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__("File not found")


class InvalidTransitionError(ConverterError):
    """Raised when a lifecycle action is not allowed from the job's current status"""

    status_code = 409

    def __init__(self, job_id: str, action: str, status: str):
        self.job_id = job_id
        self.action = action
        self.status = status
        super().__init__(f"Cannot {action} job {job_id} while {status}")
