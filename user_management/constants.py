from django.db import models


class RoleCode(models.TextChoices):
    ADMIN = 'admin', 'Quản trị hệ thống'
    QA = 'qa', 'Đảm bảo chất lượng'
    EDU_MANAGER = 'edu_manager', 'Phòng Đào tạo'
    DEPT_LEAD = 'dept_lead', 'Trưởng khoa'
    DEPT_SECRETARY = 'dept_secretary', 'Thư ký khoa'
    LECTURER = 'lecturer', 'Giảng viên'
    STUDENT = 'student', 'Sinh viên'


STAFF_ROLES = [
    RoleCode.ADMIN,
    RoleCode.QA,
    RoleCode.EDU_MANAGER,
    RoleCode.DEPT_LEAD,
    RoleCode.DEPT_SECRETARY,
    RoleCode.LECTURER,
]


class AuditAction(models.TextChoices):
    VIEW = 'view', 'View'
    CREATE = 'create', 'Create'
    UPDATE = 'update', 'Update'
    DELETE = 'delete', 'Delete'
    OTHER = 'other', 'Other'


METHOD_TO_ACTION = {
    'GET': 'view',
    'POST': 'create',
    'PUT': 'update',
    'PATCH': 'update',
    'DELETE': 'delete',
}

# URL prefix -> roles allowed through RoleRouteMiddleware. 'public' skips auth.
ROUTE_ROLES = [
    ('/api/admin/', [RoleCode.ADMIN]),
    ('/api/academic-affairs/', [RoleCode.ADMIN, RoleCode.EDU_MANAGER, RoleCode.DEPT_LEAD]),
    ('/api/qa/', [RoleCode.ADMIN, RoleCode.QA, RoleCode.DEPT_LEAD]),
    ('/api/department/', [RoleCode.ADMIN, RoleCode.DEPT_SECRETARY, RoleCode.DEPT_LEAD]),
    ('/api/teacher/', [RoleCode.ADMIN, RoleCode.LECTURER]),
    ('/api/student/', [RoleCode.ADMIN, RoleCode.STUDENT]),
    ('/api/360/public/', ['public']),
]
