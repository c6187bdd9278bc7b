from __future__ import annotations

from enum import StrEnum


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class ConnectionSignal(StrEnum):
    CONNECT = "connect"
    OPENED = "opened"
    LOST = "lost"
    HEARTBEAT_TIMEOUT = "heartbeat_timeout"
    RETRY_EXHAUSTED = "retry_exhausted"
    AUTH_EXPIRED = "auth_expired"
    DISCONNECT = "disconnect"


class EventKind(StrEnum):
    MESSAGE = "message"
    MESSAGE_READ = "message_read"
    APPLICATION_UPDATE = "application_update"
    SYSTEM = "system"
    SERVER_ERROR = "server_error"


class NotificationKind(StrEnum):
    MESSAGE = "message"
    APPLICATION = "application"
    SYSTEM = "system"
    FEEDBACK = "feedback"


class ApplicationStatus(StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class RoleName(StrEnum):
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"
    BUSINESS = "BUSINESS"
    PERSON = "PERSON"


class SensitiveField(StrEnum):
    EMAIL = "email"
    PHONE = "phone"
    TAX_ID = "tax_id"


class VisibilityRule(StrEnum):
    ADMIN_ROLE = "admin_role"
    OWNER = "owner"
    ACTIVE_RELATION = "active_relation"
    INTERNAL_PROCESS = "internal_process"
    MASKED = "masked"


class MutationStatus(StrEnum):
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"
