"""Иерархия ошибок perfbudget."""


class PerfBudgetError(Exception):
    """Базовая ошибка."""

    error_code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PerfBudgetError):
    """Некорректный ввод: имя проекта, payload отчёта."""

    error_code = "validation_error"


class ConfigurationError(ValidationError):
    """Структурно неверная конфигурация assertions."""

    error_code = "configuration_error"


class AuthorizationError(PerfBudgetError):
    """Токен не совпадает с write token проекта."""

    error_code = "authorization_error"


class NotFoundError(PerfBudgetError):
    """Project или Build не найден."""

    error_code = "not_found"


class StorageError(PerfBudgetError):
    """Сбой backend хранилища."""

    error_code = "storage_error"
