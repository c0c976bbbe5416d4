# curriculum/services/importers.py
import logging
import re

import pandas as pd
from django.db import transaction
from pandas.errors import EmptyDataError, ParserError

from monitoring.exceptions import ServiceError

from ..models import CLO, PI, PLO, Course, PiCloLink, PloCloLink, PloPiLink, Student, StudentCloResult

logger = logging.getLogger(__name__)

# kind -> (minimum column count, column names)
UPLOAD_KINDS = {
    'plo': (1, ['code', 'description']),
    'pi': (1, ['code', 'description']),
    'courses': (1, ['course_code', 'course_name', 'credits']),
    'clos': (2, ['course_code', 'clo_code', 'clo_text']),
    'plo_pi': (2, ['plo_code', 'pi_code', 'level']),
    'plo_clo': (3, ['plo_code', 'course_code', 'clo_code', 'level']),
    'pi_clo': (3, ['pi_code', 'course_code', 'clo_code', 'level']),
}

MAX_COLUMNS = 16

ACHIEVED_VALUES = {'achieved', 'đạt', 'dat', 'pass', 'passed', '1', 'true'}

RESULT_COLUMNS = [
    ('mssv', 'MSSV', ['mssv', 'student']),
    ('course_code', 'Course code', ['mã học phần', 'ma hoc phan', 'coursecode', 'course']),
    ('clo_code', 'CLO code', ['mã clo', 'ma clo', 'clo']),
    ('status', 'Status', ['trạng thái', 'trang thai', 'status', 'kết quả', 'result']),
]
OPTIONAL_RESULT_COLUMNS = [
    ('plo_code', ['plo']),
    ('level', ['level', 'mức']),
]

STUDENT_COLUMNS = [
    ('mssv', 'MSSV', ['mssv']),
    ('full_name', 'Họ tên', ['họ tên', 'ho ten', 'full']),
    ('email', 'Email', ['email']),
    ('password', 'Mật khẩu', ['mật khẩu', 'mat khau', 'password']),
]


def normalize_level(value):
    """First digit 1-4 found in the value, defaulting to 1."""
    match = re.search(r'[1-4]', str(value or ''))
    return int(match.group(0)) if match else 1


def normalize_status(value):
    text = str(value or '').strip().lower()
    return StudentCloResult.STATUS_ACHIEVED if text in ACHIEVED_VALUES else StudentCloResult.STATUS_NOT_YET


def read_csv(file, header):
    """Load an uploaded CSV as strings; raises ServiceError on empty input."""
    options = {'header': 0} if header else {'header': None, 'names': list(range(MAX_COLUMNS))}
    try:
        df = pd.read_csv(
            file,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding='utf-8-sig',
            **options,
        )
    except EmptyDataError:
        raise ServiceError('CSV is empty')
    except (ParserError, UnicodeDecodeError) as e:
        raise ServiceError(f'Could not parse CSV: {e}')

    df = df.fillna('').astype(str).apply(lambda col: col.str.strip())
    if header:
        df.columns = [str(c).strip() for c in df.columns]
    df = df[~(df == '').all(axis=1)]
    if df.empty:
        raise ServiceError('CSV is empty')
    return df


def find_column(columns, candidates):
    lowered = [(c, c.lower()) for c in columns]
    for candidate in candidates:
        for original, low in lowered:
            if candidate in low:
                return original
    return None


def _row_values(row, count):
    values = [str(v).strip() for v in row]
    while values and values[-1] == '':
        values.pop()
    return values + [''] * (count - len(values))


def import_framework_csv(framework, kind, file):
    """Upsert one kind of curriculum data from a headerless CSV."""
    if kind not in UPLOAD_KINDS:
        raise ServiceError(f"Invalid kind '{kind}'")

    min_columns, names = UPLOAD_KINDS[kind]
    df = read_csv(file, header=False)

    rows = []
    for index, raw in enumerate(df.itertuples(index=False, name=None), start=1):
        values = [str(v).strip() for v in raw]
        filled = len([v for v in values if v])
        if filled < min_columns or not all(values[:min_columns]):
            raise ServiceError(f"Row {index}: expected at least {min_columns} columns ({', '.join(names[:min_columns])})")
        rows.append(dict(zip(names, _row_values(values, len(names)))))

    importer = KIND_IMPORTERS[kind]
    with transaction.atomic():
        count = importer(framework, rows)

    logger.info(f"Imported {count} {kind} rows into framework {framework.pk}")
    return count


def _import_outcomes(model):
    def importer(framework, rows):
        for row in rows:
            model.objects.update_or_create(
                framework=framework,
                code=row['code'],
                defaults={'description': row['description']},
            )
        return len(rows)
    return importer


def _import_courses(framework, rows):
    for row in rows:
        credits = row['credits']
        model_defaults = {'course_name': row['course_name']}
        if credits:
            try:
                model_defaults['credits'] = int(float(credits))
            except ValueError:
                raise ServiceError(f"Invalid credits '{credits}' for course {row['course_code']}")
        Course.objects.update_or_create(
            framework=framework,
            course_code=row['course_code'],
            defaults=model_defaults,
        )
    return len(rows)


def _ensure_clo(framework, course_code, clo_code, clo_text=None):
    clo, created = CLO.objects.get_or_create(
        framework=framework,
        course_code=course_code,
        clo_code=clo_code,
        defaults={'clo_text': clo_text or ''},
    )
    if not created and clo_text and clo.clo_text != clo_text:
        clo.clo_text = clo_text
        clo.save(update_fields=['clo_text'])
    return clo


def _import_clos(framework, rows):
    for row in rows:
        _ensure_clo(framework, row['course_code'], row['clo_code'], row['clo_text'])
    return len(rows)


def _import_plo_pi(framework, rows):
    for row in rows:
        PloPiLink.objects.update_or_create(
            framework=framework,
            plo_code=row['plo_code'],
            pi_code=row['pi_code'],
            defaults={'level': normalize_level(row['level'])},
        )
    return len(rows)


def _import_clo_links(model, outcome_field):
    def importer(framework, rows):
        for row in rows:
            _ensure_clo(framework, row['course_code'], row['clo_code'])
            model.objects.update_or_create(
                framework=framework,
                course_code=row['course_code'],
                clo_code=row['clo_code'],
                defaults={'level': normalize_level(row['level'])},
                **{outcome_field: row[outcome_field]},
            )
        return len(rows)
    return importer


KIND_IMPORTERS = {
    'plo': _import_outcomes(PLO),
    'pi': _import_outcomes(PI),
    'courses': _import_courses,
    'clos': _import_clos,
    'plo_pi': _import_plo_pi,
    'plo_clo': _import_clo_links(PloCloLink, 'plo_code'),
    'pi_clo': _import_clo_links(PiCloLink, 'pi_code'),
}


def _resolve_columns(df, wanted):
    resolved = {}
    missing = []
    for key, label, candidates in wanted:
        column = find_column(list(df.columns), candidates)
        if column is None:
            missing.append(label)
        else:
            resolved[key] = column
    return resolved, missing


def import_results_csv(framework, file):
    """Insert uploaded CLO results. The CSV must carry a header row."""
    df = read_csv(file, header=True)
    columns, missing = _resolve_columns(df, RESULT_COLUMNS)
    if missing:
        raise ServiceError(f"CSV missing required columns: {', '.join(missing)}")
    for key, candidates in OPTIONAL_RESULT_COLUMNS:
        column = find_column(list(df.columns), candidates)
        if column is not None and column not in columns.values():
            columns[key] = column

    students = dict(
        Student.objects.filter(framework=framework).values_list('mssv', 'id')
    )

    results = []
    for _, row in df.iterrows():
        mssv = row[columns['mssv']]
        course_code = row[columns['course_code']]
        clo_code = row[columns['clo_code']]
        if not (mssv and course_code and clo_code):
            continue
        level = row[columns['level']] if 'level' in columns else ''
        results.append(StudentCloResult(
            framework=framework,
            student_id=students.get(mssv),
            mssv=mssv,
            course_code=course_code,
            clo_code=clo_code,
            plo_code=row[columns['plo_code']] if 'plo_code' in columns else '',
            level=normalize_level(level) if level else None,
            status=normalize_status(row[columns['status']]),
            source='upload',
        ))

    if not results:
        raise ServiceError('No valid rows found in CSV')

    StudentCloResult.objects.bulk_create(results)
    logger.info(f"Inserted {len(results)} CLO results for framework {framework.pk}")
    return len(results)


def parse_students_csv(file):
    """Rows of ``{mssv, full_name, email, password}`` from a headed CSV."""
    df = read_csv(file, header=True)
    columns, missing = _resolve_columns(df, STUDENT_COLUMNS)
    if missing:
        raise ServiceError(f"CSV missing required columns: {', '.join(missing)}")

    return [
        {key: row[column] for key, column in columns.items()}
        for _, row in df.iterrows()
    ]
