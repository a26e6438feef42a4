import os

import pytest

from nlw_questionnaire.errors import ConflictError, NotFoundError, ValidationError
from nlw_questionnaire.services.csv_service import template_to_csv
from nlw_questionnaire.services.template_service import DEFAULT_TEMPLATE_CSV

from conftest import make_template

CSV = (
    "question_number,question_text,answer1_text,answer1_value,answer2_text,answer2_value,"
    "answer3_text,answer3_value,answer4_text,answer4_value,answer5_text,answer5_value\n"
    "1,First?,Low,5,High,10,,,,,,\n"
    "2,Second?,Low,1,High,oops,,,,,,\n"
)


@pytest.fixture
def templates(engine):
    return engine.templates


def test_import_creates_then_versions(templates):
    first, warnings = templates.import_csv('riskTolerance', CSV)
    assert first.id == 'riskTolerance'
    assert first.version == 1
    assert len(warnings) == 1

    second, _ = templates.import_csv('riskTolerance', CSV)
    assert second.version == 2
    assert templates.version_info('riskTolerance')['latestVersion'] == 2


def test_import_without_questions_is_rejected(templates):
    with pytest.raises(ValidationError):
        templates.import_csv('riskTolerance', "question_number,question_text\n,\n")


def test_export_matches_import(templates):
    stored, _ = templates.import_csv('riskTolerance', CSV)
    assert templates.export_csv('riskTolerance') == template_to_csv(stored)


def test_export_without_template(templates):
    with pytest.raises(NotFoundError):
        templates.export_csv('clientUpdate')


def test_update_section_without_template_conflicts(templates):
    with pytest.raises(ConflictError):
        templates.update_section('riskTolerance', make_template())


def test_update_by_id(templates):
    templates.create(make_template().model_dump(by_alias=True))
    payload = make_template(title='Renamed').model_dump(by_alias=True)

    updated = templates.update('riskTolerance', payload)
    assert updated.version == 2
    assert updated.title == 'Renamed'


def test_update_checks_ids(templates):
    templates.create(make_template().model_dump(by_alias=True))

    with pytest.raises(ValidationError):
        templates.update('riskTolerance', make_template(template_id='other').model_dump(by_alias=True))
    with pytest.raises(NotFoundError):
        templates.update('clientUpdate', make_template(section='clientUpdate').model_dump(by_alias=True))


def test_version_info(templates):
    templates.create(make_template().model_dump(by_alias=True))
    templates.update('riskTolerance', make_template(title='v2').model_dump(by_alias=True))

    info = templates.version_info('riskTolerance')
    assert info['current']['version'] == 2
    assert [h['version'] for h in info['history']] == [1, 2]
    assert templates.get_version('riskTolerance', 1).version == 1
    with pytest.raises(NotFoundError):
        templates.get_version('riskTolerance', 3)


def test_delete(templates):
    templates.create(make_template().model_dump(by_alias=True))
    templates.delete('riskTolerance')

    with pytest.raises(NotFoundError):
        templates.get_active('riskTolerance')
    with pytest.raises(NotFoundError):
        templates.delete('riskTolerance')


def test_default_template_is_seeded_once(templates):
    assert os.path.exists(DEFAULT_TEMPLATE_CSV)

    seeded = templates.setup_default_templates()
    assert seeded.id == 'riskTolerance'
    assert seeded.title == 'Risk Tolerance Assessment'
    assert seeded.version == 1
    assert len(seeded.questions) == 10
    assert all(0 <= o.value <= 30 for q in seeded.questions for o in q.options)

    assert templates.setup_default_templates() is None
