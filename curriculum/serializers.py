from rest_framework import serializers

from .models import CLO, PI, PLO, Course, Framework, PiCloLink, PloCloLink, PloPiLink, Student, StudentCloResult


class FrameworkSerializer(serializers.ModelSerializer):
    label = serializers.CharField(read_only=True)

    class Meta:
        model = Framework
        fields = ['id', 'cohort', 'major', 'academic_year', 'label', 'created_at']
        read_only_fields = ['id', 'created_at']

    def validate(self, data):
        missing = [f for f in ('cohort', 'major', 'academic_year') if not str(data.get(f, '')).strip()]
        if missing:
            raise serializers.ValidationError(f"Missing fields: {', '.join(missing)}")
        return {k: v.strip() if isinstance(v, str) else v for k, v in data.items()}


class PLOSerializer(serializers.ModelSerializer):
    class Meta:
        model = PLO
        fields = ['id', 'code', 'description']


class PISerializer(serializers.ModelSerializer):
    class Meta:
        model = PI
        fields = ['id', 'code', 'description']


class CLOSerializer(serializers.ModelSerializer):
    class Meta:
        model = CLO
        fields = ['id', 'course_code', 'clo_code', 'clo_text']


class PloPiLinkSerializer(serializers.ModelSerializer):
    class Meta:
        model = PloPiLink
        fields = ['id', 'plo_code', 'pi_code', 'level']


class PloCloLinkSerializer(serializers.ModelSerializer):
    class Meta:
        model = PloCloLink
        fields = ['id', 'plo_code', 'course_code', 'clo_code', 'level']


class PiCloLinkSerializer(serializers.ModelSerializer):
    class Meta:
        model = PiCloLink
        fields = ['id', 'pi_code', 'course_code', 'clo_code', 'level']


class CourseSerializer(serializers.ModelSerializer):
    department = serializers.SerializerMethodField()

    class Meta:
        model = Course
        fields = ['id', 'framework', 'course_code', 'course_name', 'credits', 'department']

    def get_department(self, obj):
        if obj.department is None:
            return None
        return {'id': str(obj.department_id), 'code': obj.department.code, 'name': obj.department.name}


class StudentSerializer(serializers.ModelSerializer):
    user_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Student
        fields = ['id', 'user_id', 'framework', 'mssv', 'student_code', 'full_name', 'email', 'created_at']


class StudentCreateSerializer(serializers.Serializer):
    framework_id = serializers.IntegerField()
    mssv = serializers.CharField(max_length=30)
    full_name = serializers.CharField(max_length=200)
    email = serializers.EmailField()
    password = serializers.CharField(required=False, allow_blank=True, write_only=True)


class StudentCloResultSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = StudentCloResult
        fields = [
            'id', 'framework', 'mssv', 'full_name', 'course_code', 'clo_code', 'plo_code',
            'level', 'status', 'score', 'source', 'observation', 'effective_at', 'updated_at',
        ]

    def get_full_name(self, obj):
        return obj.student.full_name if obj.student else ''


LIST_KINDS = {
    'plo': (PLO, PLOSerializer),
    'pi': (PI, PISerializer),
    'courses': (Course, CourseSerializer),
    'clos': (CLO, CLOSerializer),
    'plo_pi': (PloPiLink, PloPiLinkSerializer),
    'plo_clo': (PloCloLink, PloCloLinkSerializer),
    'pi_clo': (PiCloLink, PiCloLinkSerializer),
}
