"""项目流程异常体系

每个异常携带 HTTP 状态码和业务错误码，由 gateway 统一渲染为
{code, message, data} 响应信封。
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    """业务错误码，0 表示成功"""

    SUCCESS = 0
    SYSTEM_ERROR = 1000
    PARAM_ERROR = 1001
    AUTH_ERROR = 1002
    NOT_FOUND = 1004
    INVALID_STATE_TRANSITION = 2101
    STAGE_CONFLICT = 2102


class WorkflowError(Exception):
    """项目流程基础异常"""

    status_code: int = 500
    code: ErrorCode = ErrorCode.SYSTEM_ERROR

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述（直接返回给调用方）
            recoverable: 调用方能否通过修正输入或刷新状态后重试
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class TaskNotFoundError(WorkflowError):
    """项目事项不存在"""

    status_code = 404
    code = ErrorCode.NOT_FOUND

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Project task {task_id} does not exist")
        self.task_id = task_id


class NotificationNotFoundError(WorkflowError):
    """通知不存在（或不属于当前用户）"""

    status_code = 404
    code = ErrorCode.NOT_FOUND

    def __init__(self, notification_id: int) -> None:
        super().__init__(f"Notification {notification_id} does not exist")
        self.notification_id = notification_id


class InvalidStateTransitionError(WorkflowError):
    """当前阶段不满足操作的前置阶段

    这是最常见的预期失败，任务保持原样，不写历史、不落盘。
    """

    status_code = 400
    code = ErrorCode.INVALID_STATE_TRANSITION

    def __init__(
        self,
        task_id: int,
        action: str,
        current_stage: str,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message
            or f"Action {action} is not allowed while task {task_id} is in stage {current_stage}"
        )
        self.task_id = task_id
        self.action = action
        self.current_stage = current_stage


class StageConflictError(InvalidStateTransitionError):
    """比较并交换失败：另一个写入者已先提交了同一任务的流转"""

    code = ErrorCode.STAGE_CONFLICT

    def __init__(self, task_id: int, action: str, expected_stage: str) -> None:
        super().__init__(
            task_id,
            action,
            expected_stage,
            message=(
                f"Task {task_id} was modified concurrently; "
                f"{action} expected stage {expected_stage}"
            ),
        )


class WorkflowValidationError(WorkflowError):
    """输入不合法（例如审批标记不是布尔值）"""

    status_code = 400
    code = ErrorCode.PARAM_ERROR

    def __init__(self, message: str, details: list | None = None) -> None:
        super().__init__(message)
        self.details = details


class ActorRequiredError(WorkflowError):
    """缺少或无法解析认证层提供的操作人身份"""

    status_code = 401
    code = ErrorCode.AUTH_ERROR


class StorageFailureError(WorkflowError):
    """持久化失败 -- 本次调用中止，事务已回滚，不自动重试"""

    status_code = 500
    code = ErrorCode.SYSTEM_ERROR

    def __init__(self, message: str = "Storage operation failed") -> None:
        super().__init__(message, recoverable=False)


class NotificationDeliveryError(WorkflowError):
    """通知投递失败 -- 只记录日志，永不传播给流程调用方"""
