from studioflow.services import (
    notification_service,
    task_service,
    task_state_machine,
    visibility_service,
    workload_service,
)


__all__ = [
    "notification_service",
    "task_service",
    "task_state_machine",
    "visibility_service",
    "workload_service",
]
