from .base import TenantAwareModel, AuditableModel, SoftDeleteModel, BaseModel

__all__ = ['TenantAwareModel', 'AuditableModel', 'SoftDeleteModel', 'BaseModel']
