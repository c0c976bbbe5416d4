# conftest.py
from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from assessment.models import Rubric
from curriculum.models import CLO, PLO, Course, Framework, PloCloLink, Student
from evaluation360.models import Eval360Form, EvaluationCampaign
from user_management.constants import RoleCode
from user_management.models import CustomUser, Department, Role, StaffDepartment, UserRole


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def department(db):
    return Department.objects.create(code='CNTT', name='Công nghệ thông tin')


@pytest.fixture
def make_user(db):
    def _make_user(email, roles=(), full_name='', department=None, password='Secret123!'):
        user = CustomUser.objects.create_user(email=email, password=password, full_name=full_name)
        for code in roles:
            role, _ = Role.objects.get_or_create(code=code, defaults={'label': RoleCode(code).label})
            UserRole.objects.create(user=user, role=role)
        if department is not None:
            StaffDepartment.objects.create(user=user, department=department)
        return user
    return _make_user


@pytest.fixture
def admin_user(make_user):
    return make_user('admin@example.edu.vn', [RoleCode.ADMIN], 'System Admin')


@pytest.fixture
def qa_user(make_user):
    return make_user('qa@example.edu.vn', [RoleCode.QA], 'QA Officer')


@pytest.fixture
def edu_manager(make_user):
    return make_user('daotao@example.edu.vn', [RoleCode.EDU_MANAGER], 'Phòng Đào tạo')


@pytest.fixture
def dept_staff(make_user, department):
    return make_user('thuky@example.edu.vn', [RoleCode.DEPT_SECRETARY], 'Thư ký Khoa', department)


@pytest.fixture
def lecturer(make_user, department):
    return make_user('gv.an@example.edu.vn', [RoleCode.LECTURER], 'Nguyễn Văn An', department)


@pytest.fixture
def student_user(make_user):
    return make_user('sv001@example.edu.vn', [RoleCode.STUDENT], 'Trần Thị Bình')


@pytest.fixture
def framework(db, department):
    framework = Framework.objects.create(cohort='K47', major='Kỹ thuật phần mềm', academic_year='2023-2027')
    PLO.objects.create(framework=framework, code='PLO1', description='Apply computing knowledge')
    PLO.objects.create(framework=framework, code='PLO2', description='Communicate effectively')
    Course.objects.create(
        framework=framework, course_code='IT101', course_name='Nhập môn lập trình', credits=3,
        department=department,
    )
    CLO.objects.create(framework=framework, course_code='IT101', clo_code='CLO1', clo_text='Write simple programs')
    CLO.objects.create(framework=framework, course_code='IT101', clo_code='CLO2', clo_text='Explain algorithms')
    PloCloLink.objects.create(framework=framework, plo_code='PLO1', course_code='IT101', clo_code='CLO1', level=3)
    PloCloLink.objects.create(framework=framework, plo_code='PLO2', course_code='IT101', clo_code='CLO2', level=2)
    return framework


@pytest.fixture
def student(framework, student_user):
    return Student.objects.create(
        user=student_user,
        framework=framework,
        mssv='SV001',
        student_code='SV001',
        full_name='Trần Thị Bình',
        email=student_user.email,
    )


@pytest.fixture
def rubric(framework):
    return Rubric.objects.create(
        framework=framework,
        course_code='IT101',
        title='Programming lab rubric',
        threshold=70,
        definition={
            'columns': [
                {'key': 'L1', 'label': 'Beginning'},
                {'key': 'L2', 'label': 'Developing'},
                {'key': 'L3', 'label': 'Proficient'},
            ],
            'rows': [
                {'id': 'r1', 'label': 'Code correctness', 'clo_ids': ['CLO1']},
                {'id': 'r2', 'label': 'Code style', 'clo_ids': ['CLO1']},
                {'id': 'r3', 'label': 'Algorithm explanation', 'clo_ids': ['IT101:CLO2']},
            ],
        },
    )


@pytest.fixture
def eval_form(rubric, framework):
    return Eval360Form.objects.create(
        title='Peer review',
        group_code='peer',
        rubric=rubric,
        framework=framework,
        course_code='IT101',
        public_enabled=True,
        public_slug='peer-review',
    )


@pytest.fixture
def open_campaign(rubric, framework):
    now = timezone.now()
    return EvaluationCampaign.objects.create(
        name='HK1 2024',
        rubric=rubric,
        framework=framework,
        start_at=now - timedelta(days=1),
        end_at=now + timedelta(days=7),
    )


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def auth_client():
    def _auth_client(user):
        client = APIClient()
        token = RefreshToken.for_user(user).access_token
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        return client
    return _auth_client
