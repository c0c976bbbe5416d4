from rest_framework import serializers

from .models import AuditLog, CustomUser, Department, Role


class DepartmentSerializer(serializers.ModelSerializer):
    staff_count = serializers.SerializerMethodField()

    class Meta:
        model = Department
        fields = ['id', 'code', 'name', 'is_active', 'staff_count', 'created_at']
        read_only_fields = ['id', 'created_at']

    def get_staff_count(self, obj):
        return obj.staff_links.count()

    def validate_code(self, value):
        value = value.strip()
        if not value.replace('_', '').replace('-', '').isalnum():
            raise serializers.ValidationError("Department code must be alphanumeric")
        return value.upper()

    def validate_name(self, value):
        if not value.strip():
            raise serializers.ValidationError("Department name is required")
        return value.strip()


class RoleSerializer(serializers.ModelSerializer):
    class Meta:
        model = Role
        fields = ['id', 'code', 'label']


class StaffSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source='full_name')

    class Meta:
        model = CustomUser
        fields = ['id', 'email', 'name', 'is_active']


class UserSerializer(serializers.ModelSerializer):
    """User row for the admin console: memberships and role codes inlined."""
    departments = serializers.SerializerMethodField()
    roles = serializers.SerializerMethodField()

    class Meta:
        model = CustomUser
        fields = ['id', 'email', 'full_name', 'is_active', 'date_joined', 'departments', 'roles']

    def get_departments(self, obj):
        return [
            {
                'id': str(link.department_id),
                'code': link.department.code,
                'name': link.department.name,
                'is_head': link.is_head,
            }
            for link in obj.staff_departments.all()
        ]

    def get_roles(self, obj):
        return sorted({assignment.role.code for assignment in obj.role_assignments.all()})


class UserUpdateSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    email = serializers.EmailField(required=False)
    full_name = serializers.CharField(required=False, allow_blank=True, max_length=200)
    is_active = serializers.BooleanField(required=False)
    department_codes = serializers.ListField(child=serializers.CharField(), required=False)
    role_codes = serializers.ListField(child=serializers.CharField(), required=False)

    def validate_email(self, value):
        return value.strip().lower()

    def validate_role_codes(self, value):
        codes = sorted(set(v.strip() for v in value if v.strip()))
        known = set(Role.objects.filter(code__in=codes).values_list('code', flat=True))
        missing = [c for c in codes if c not in known]
        if missing:
            raise serializers.ValidationError(f"Unknown roles: {', '.join(missing)}")
        return codes

    def validate_department_codes(self, value):
        codes = sorted(set(v.strip().upper() for v in value if v.strip()))
        known = set(Department.objects.filter(code__in=codes).values_list('code', flat=True))
        missing = [c for c in codes if c not in known]
        if missing:
            raise serializers.ValidationError(f"Unknown departments: {', '.join(missing)}")
        return codes


class BulkUserRowSerializer(serializers.Serializer):
    email = serializers.EmailField()
    full_name = serializers.CharField(required=False, allow_blank=True, default='')
    department_code = serializers.CharField(required=False, allow_blank=True, default='')
    roles = serializers.CharField(required=False, allow_blank=True, default='')
    password = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_email(self, value):
        return value.strip().lower()

    def validate_roles(self, value):
        return [code.strip() for code in value.split(';') if code.strip()]


class AuditLogSerializer(serializers.ModelSerializer):
    user_email = serializers.SerializerMethodField()
    action_display = serializers.CharField(source='get_action_display', read_only=True)

    class Meta:
        model = AuditLog
        fields = [
            'id', 'user', 'user_email', 'action', 'action_display', 'module',
            'details', 'ip_address', 'user_agent', 'status', 'created_at'
        ]

    def get_user_email(self, obj):
        return obj.user.email if obj.user else None
