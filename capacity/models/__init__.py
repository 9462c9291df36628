"""ORM model package."""

from capacity.models.entities import (
    Assignment,
    AssignmentRole,
    AuditAction,
    AuditLogEntry,
    Phase,
    PhaseStatus,
    Project,
    ProjectStatus,
    Task,
    TaskStatus,
    TeamMember,
    UserRole,
)

__all__ = [
    "Assignment",
    "AssignmentRole",
    "AuditAction",
    "AuditLogEntry",
    "Phase",
    "PhaseStatus",
    "Project",
    "ProjectStatus",
    "Task",
    "TaskStatus",
    "TeamMember",
    "UserRole",
]
