# curriculum/tests/test_curriculum.py
import io

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework import status

from curriculum.models import CLO, Framework, PloCloLink, Student, StudentCloResult
from curriculum.services import attainment, importers
from curriculum.services.graph import build_graph
from monitoring.exceptions import ServiceError
from user_management.models import CustomUser


def csv_file(text, name='data.csv'):
    return SimpleUploadedFile(name, text.encode('utf-8'), content_type='text/csv')


def add_result(framework, student, clo_code, result_status, course_code='IT101'):
    return StudentCloResult.objects.create(
        framework=framework,
        student=student,
        mssv=student.mssv,
        course_code=course_code,
        clo_code=clo_code,
        status=result_status,
    )


class TestNormalizers:
    @pytest.mark.parametrize('raw, expected', [('3', 3), ('Mức 2', 2), ('', 1), ('9', 1), (None, 1)])
    def test_level(self, raw, expected):
        assert importers.normalize_level(raw) == expected

    @pytest.mark.parametrize('raw, expected', [
        ('Đạt', 'achieved'), ('PASS', 'achieved'), ('1', 'achieved'),
        ('Chưa đạt', 'not_yet'), ('', 'not_yet'),
    ])
    def test_status(self, raw, expected):
        assert importers.normalize_status(raw) == expected


@pytest.mark.django_db
class TestFrameworkImport:
    def test_clo_links_create_missing_clos(self, framework):
        count = importers.import_framework_csv(
            framework, 'plo_clo', io.BytesIO('PLO1,IT102,CLO1,Mức 3\nPLO2,IT102,CLO2,\n'.encode('utf-8')),
        )
        assert count == 2
        assert CLO.objects.filter(framework=framework, course_code='IT102').count() == 2
        link = PloCloLink.objects.get(framework=framework, course_code='IT102', clo_code='CLO1')
        assert link.level == 3
        assert PloCloLink.objects.get(framework=framework, course_code='IT102', clo_code='CLO2').level == 1

    def test_upsert_keeps_one_row(self, framework):
        importers.import_framework_csv(framework, 'clos', io.BytesIO(b'IT101,CLO1,Updated text\n'))
        clo = CLO.objects.get(framework=framework, course_code='IT101', clo_code='CLO1')
        assert clo.clo_text == 'Updated text'
        assert CLO.objects.filter(framework=framework).count() == 2

    def test_short_row_is_rejected(self, framework):
        with pytest.raises(ServiceError) as excinfo:
            importers.import_framework_csv(framework, 'clos', io.BytesIO(b'IT101\n'))
        assert 'Row 1: expected at least 2 columns' in str(excinfo.value.detail)

    def test_empty_file(self, framework):
        with pytest.raises(ServiceError) as excinfo:
            importers.import_framework_csv(framework, 'plo', io.BytesIO(b''))
        assert str(excinfo.value.detail) == 'CSV is empty'

    def test_upload_endpoint(self, auth_client, edu_manager, framework):
        response = auth_client(edu_manager).post(
            '/api/academic-affairs/upload/',
            {'framework_id': framework.pk, 'kind': 'pi', 'file': csv_file('PI1.1,Write code\nPI1.2,Test code\n')},
            format='multipart',
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {'ok': True, 'kind': 'pi', 'count': 2}

    def test_upload_unknown_framework(self, auth_client, edu_manager):
        response = auth_client(edu_manager).post(
            '/api/academic-affairs/upload/',
            {'framework_id': 999, 'kind': 'pi', 'file': csv_file('PI1,x\n')},
            format='multipart',
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {'error': 'Framework not found'}


@pytest.mark.django_db
class TestResultsImport:
    def test_insert_results(self, framework, student):
        upload = csv_file('MSSV,Mã học phần,Mã CLO,Kết quả\nSV001,IT101,CLO1,Đạt\nSV001,IT101,CLO2,Chưa đạt\n')
        assert importers.import_results_csv(framework, upload) == 2

        results = {r.clo_code: r for r in StudentCloResult.objects.filter(framework=framework)}
        assert results['CLO1'].status == 'achieved'
        assert results['CLO1'].student == student
        assert results['CLO2'].status == 'not_yet'

    def test_missing_column(self, auth_client, dept_staff, framework):
        response = auth_client(dept_staff).post(
            '/api/department/results/upload/',
            {'framework_id': framework.pk, 'file': csv_file('MSSV,Course,Status\nSV001,IT101,pass\n')},
            format='multipart',
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {'error': 'CSV missing required columns: CLO code'}


@pytest.mark.django_db
class TestGraph:
    def test_default_graph(self, framework):
        graph = build_graph(framework)
        counts = graph['summary']['counts']
        assert counts['nodes'] == 5
        assert counts['edges'] == 4

        edges = {edge['id']: edge for edge in graph['edges']}
        assert edges['E:PLOCOURSE:PLO1:IT101']['label'] == 'PLO–COURSE (3)'
        assert edges['E:PLOCOURSE:PLO1:IT101']['weight'] == 1
        assert len(graph['elements']) == 9

    def test_shortcuts_and_code_labels(self, framework):
        graph = build_graph(framework, shortcuts=True, label_mode='code')
        assert graph['summary']['counts']['edges'] == 6
        assert all(node['label'] == node['code'] for node in graph['nodes'])

    def test_links_to_unknown_outcomes_get_bare_nodes(self, framework):
        PloCloLink.objects.create(framework=framework, plo_code='PLO9', course_code='IT900', clo_code='CLO1')
        nodes = {node['id'] for node in build_graph(framework)['nodes']}
        assert {'PLO:PLO9', 'COURSE:IT900', 'CLO:IT900:CLO1'} <= nodes


@pytest.mark.django_db
class TestAttainment:
    def test_latest_result_wins(self, framework, student):
        add_result(framework, student, 'CLO1', 'not_yet')
        add_result(framework, student, 'CLO1', 'achieved')
        add_result(framework, student, 'CLO2', 'not_yet')

        summary = attainment.framework_attainment(framework)
        plos = {row['code']: row for row in summary['plos']}
        assert plos['PLO1'] == {
            'code': 'PLO1', 'linked_clos': 1, 'covered_clos': 1, 'coverage_pct': 100.0,
            'results': 1, 'achieved': 1, 'attainment_pct': 100.0,
        }
        assert plos['PLO2']['attainment_pct'] == 0.0
        assert summary['pis'] == []

    def test_pending_clos(self, framework, student):
        add_result(framework, student, 'CLO1', 'achieved')
        add_result(framework, student, 'CLO2', 'not_yet')

        pending = attainment.pending_clos(framework, [student])
        assert [(s.mssv, r.clo_code) for s, r in pending] == [('SV001', 'CLO2')]
        assert attainment.clo_texts(framework)[('IT101', 'CLO2')] == 'Explain algorithms'

    def test_student_progress_fills_missing_clos(self, framework, student):
        add_result(framework, student, 'CLO1', 'achieved')

        progress = attainment.student_outcome_progress(student, 'plo')
        assert [group['plo']['code'] for group in progress] == ['PLO1', 'PLO2']
        assert progress[0]['items'][0]['status'] == 'achieved'
        assert progress[1]['items'] == [
            {'course_code': 'IT101', 'clo_code': 'CLO2', 'level': 2, 'status': 'not_yet'},
        ]

    def test_heatmap_cells(self, framework, student):
        add_result(framework, student, 'CLO1', 'achieved')

        heatmap = attainment.results_heatmap(
            framework, columns=[{'course_code': 'IT101', 'clo_code': 'CLO1'}, {'course_code': 'IT101', 'clo_code': 'CLO2'}],
        )
        assert heatmap['rows'] == [{'mssv': 'SV001', 'full_name': 'Trần Thị Bình'}]
        assert heatmap['values'] == [[1, None]]

    def test_student_progress_endpoint(self, auth_client, student_user, student, framework):
        add_result(framework, student, 'CLO2', 'achieved')
        response = auth_client(student_user).get('/api/student/plo-progress/')
        assert response.status_code == status.HTTP_200_OK
        data = response.json()['data']
        assert data[1]['items'][0]['status'] == 'achieved'

    def test_student_cannot_read_another_profile(self, auth_client, student_user, student, make_user):
        other = make_user('sv002@example.edu.vn', ['student'], 'Lê Văn C')
        response = auth_client(other).get(f'/api/student/self/?student_id={student.pk}')
        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestAcademicAffairsEndpoints:
    def test_framework_requires_every_field(self, auth_client, edu_manager):
        response = auth_client(edu_manager).post(
            '/api/academic-affairs/framework/', {'cohort': 'K48', 'major': 'KTPM'}, format='json',
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'academic_year' in response.json()['error']
        assert not Framework.objects.filter(cohort='K48').exists()

    def test_framework_create(self, auth_client, edu_manager):
        response = auth_client(edu_manager).post(
            '/api/academic-affairs/framework/',
            {'cohort': ' K48 ', 'major': 'KTPM', 'academic_year': '2024-2028'},
            format='json',
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()['item']['cohort'] == 'K48'

    def test_list_by_kind(self, auth_client, edu_manager, framework):
        response = auth_client(edu_manager).get(
            '/api/academic-affairs/list/', {'framework_id': framework.pk, 'kind': 'plo_clo'},
        )
        data = response.json()
        assert data['count'] == 2
        assert [(row['plo_code'], row['clo_code'], row['level']) for row in data['data']] == [
            ('PLO1', 'CLO1', 3), ('PLO2', 'CLO2', 2),
        ]

    def test_list_unknown_kind(self, auth_client, edu_manager, framework):
        response = auth_client(edu_manager).get(
            '/api/academic-affairs/list/', {'framework_id': framework.pk, 'kind': 'grades'},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {'error': "Invalid kind 'grades'"}


@pytest.mark.django_db
class TestStudentAdmin:
    url = '/api/academic-affairs/students/'

    def test_csv_missing_header(self, auth_client, edu_manager, framework):
        response = auth_client(edu_manager).post(
            self.url,
            {'framework_id': framework.pk, 'file': csv_file('MSSV,Họ tên,Mật khẩu\nSV100,Lê Văn C,\n')},
            format='multipart',
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {'error': 'CSV missing required columns: Email'}
        assert not Student.objects.filter(mssv='SV100').exists()

    def test_csv_import_falls_back_to_default_password(self, auth_client, edu_manager, framework, settings):
        settings.DEFAULT_STUDENT_PASSWORD = 'Default#2024'
        upload = csv_file(
            'MSSV,Họ tên,Email,Mật khẩu\n'
            'SV100,Lê Văn C,sv100@example.edu.vn,\n'
            'SV101,Phạm Thị D,sv101@example.edu.vn,Own#Pass1\n'
        )
        response = auth_client(edu_manager).post(
            self.url, {'framework_id': framework.pk, 'file': upload}, format='multipart',
        )
        assert response.status_code == status.HTTP_200_OK
        assert [row['ok'] for row in response.json()['results']] == [True, True]

        first = Student.objects.get(mssv='SV100').user
        assert first.check_password('Default#2024')
        assert first.has_role('student')
        assert Student.objects.get(mssv='SV101').user.check_password('Own#Pass1')

    def test_reset_generates_password(self, auth_client, edu_manager, student):
        response = auth_client(edu_manager).patch(self.url, {'student_id': student.pk}, format='json')
        data = response.json()
        assert data['ok'] is True
        assert 12 <= len(data['password']) <= 14

        student.user.refresh_from_db()
        assert student.user.check_password(data['password'])

    def test_delete_removes_login_account(self, auth_client, edu_manager, student):
        user_id = student.user_id
        response = auth_client(edu_manager).delete(f'{self.url}?student_id={student.pk}')
        assert response.json() == {'ok': True}
        assert not Student.objects.filter(pk=student.pk).exists()
        assert not CustomUser.objects.filter(pk=user_id).exists()
