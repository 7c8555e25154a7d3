"""Виды ошибок ядра модерации.

Unauthorized нельзя повторять как есть; Conflict означает, что состояние
сущности изменилось, и вызывающему нужно перечитать её.
"""


class CoreError(Exception):
    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail


class Unauthorized(CoreError):
    status_code = 403


class NotFound(CoreError):
    status_code = 404


class Conflict(CoreError):
    status_code = 409


class ValidationError(CoreError):
    status_code = 400


class Internal(CoreError):
    status_code = 500
