class TaskError(Exception):
    """Base for every condition the task API turns into a structured response."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaskError):
    status_code = 400


class DispatchError(TaskError):
    status_code = 502


class TaskNotFound(TaskError):
    status_code = 404

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class AlreadyExists(TaskError):
    status_code = 409

    def __init__(self, task_id: str):
        super().__init__(f"Task already exists: {task_id}")
        self.task_id = task_id


class DuplicateCallback(TaskError):
    # Acknowledged as a no-op, never reported to the caller as a failure.
    status_code = 200

    def __init__(self, task_id: str, status: str):
        super().__init__(f"Task {task_id} already completed with status {status}")
        self.task_id = task_id
        self.status = status


class NotReady(TaskError):
    status_code = 400

    def __init__(self, task_id: str, status: str):
        super().__init__(f"Export not ready or failed. Status: {status}")
        self.task_id = task_id
        self.status = status


class StorageInconsistency(TaskError):
    status_code = 404

    def __init__(self, message: str, status_code: int = 404):
        super().__init__(message)
        self.status_code = status_code
