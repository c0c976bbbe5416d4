# tests/test_models.py
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone

from assessment.models import Rubric
from curriculum.models import Framework
from evaluation360.models import Eval360Form, EvaluationCampaign
from user_management.constants import RoleCode
from user_management.models import Department, Role, StaffDepartment, UserRole

User = get_user_model()


class UserModelTest(TestCase):
    def setUp(self):
        cache.clear()
        self.department = Department.objects.create(name='Công nghệ thông tin', code='CNTT')
        self.user = User.objects.create_user(
            email='gv.an@example.edu.vn',
            password='testpass123',
            full_name='Nguyễn Văn An',
        )
        self.lecturer_role = Role.objects.create(code=RoleCode.LECTURER, label='Giảng viên')

    def test_user_creation(self):
        self.assertEqual(self.user.get_full_name(), 'Nguyễn Văn An')
        self.assertEqual(self.user.get_short_name(), 'An')
        self.assertTrue(self.user.check_password('testpass123'))
        self.assertEqual(self.user.role_codes, [])

    def test_role_codes_are_cached_until_cleared(self):
        self.assertFalse(self.user.has_role(RoleCode.LECTURER))
        UserRole.objects.create(user=self.user, role=self.lecturer_role)
        self.assertFalse(self.user.has_role(RoleCode.LECTURER))

        self.user.clear_permission_cache()
        self.assertTrue(self.user.has_role(RoleCode.LECTURER))
        self.assertFalse(self.user.is_admin)

    def test_department_scoped_role_counts(self):
        UserRole.objects.create(user=self.user, role=self.lecturer_role, department=self.department)
        self.assertEqual(self.user.role_codes, [RoleCode.LECTURER])

    def test_primary_department_prefers_head(self):
        other = Department.objects.create(name='Khoa Kinh tế', code='KT')
        StaffDepartment.objects.create(user=self.user, department=self.department)
        StaffDepartment.objects.create(user=self.user, department=other, is_head=True)
        self.assertEqual(self.user.primary_department(), other)


class FrameworkModelTest(TestCase):
    def setUp(self):
        self.framework = Framework.objects.create(
            cohort='K47', major='Kỹ thuật phần mềm', academic_year='2023-2027',
        )

    def test_labels(self):
        self.assertEqual(self.framework.label, 'K47 – Kỹ thuật phần mềm – NK 2023-2027')
        self.assertEqual(self.framework.short_label, 'K47 • Kỹ thuật phần mềm • 2023-2027')
        self.assertEqual(str(self.framework), self.framework.label)


class EvaluationCampaignModelTest(TestCase):
    def setUp(self):
        self.framework = Framework.objects.create(cohort='K47', major='KTPM', academic_year='2023-2027')
        self.rubric = Rubric.objects.create(
            framework=self.framework, course_code='IT101', title='Lab rubric',
            definition={'columns': ['Weak', 'Good'], 'rows': []},
        )
        self.form = Eval360Form.objects.create(
            title='Peer review', group_code='peer', rubric=self.rubric,
            framework=self.framework, course_code='IT101',
        )
        now = timezone.now()
        self.campaign = EvaluationCampaign.objects.create(
            name='HK1', rubric=self.rubric, start_at=now - timedelta(days=1), end_at=now + timedelta(days=1),
        )

    def test_open_window_excludes_end(self):
        self.assertTrue(self.campaign.is_open())
        self.assertFalse(self.campaign.is_open(self.campaign.end_at))
        self.assertTrue(self.campaign.is_open(self.campaign.start_at))
        self.assertIn(self.campaign, EvaluationCampaign.objects.open())

    def test_matches_binds_only_set_fields(self):
        self.assertTrue(self.campaign.matches(self.form))

        self.campaign.course_code = 'IT202'
        self.assertFalse(self.campaign.matches(self.form))

        self.campaign.course_code = ''
        other_rubric = Rubric.objects.create(framework=self.framework, course_code='IT101', title='Other')
        self.form.rubric = other_rubric
        self.assertFalse(self.campaign.matches(self.form))

    def test_rubric_columns_are_normalised(self):
        self.assertEqual(self.rubric.columns, [{'key': 'L1', 'label': 'Weak'}, {'key': 'L2', 'label': 'Good'}])
