import pytest

from nlw_questionnaire.errors import ValidationError
from nlw_questionnaire.services.csv_service import (
    CSV_HEADER, clean_text, normalize, parse_csv, rows_to_csv, template_to_csv, template_to_rows,
)


def _row(number, text, *pairs):
    row = {'question_number': number, 'question_text': text}
    for slot in range(1, 6):
        option_text, value = pairs[slot - 1] if slot <= len(pairs) else ('', '')
        row[f'answer{slot}_text'] = option_text
        row[f'answer{slot}_value'] = value
    return row


def test_two_populated_slots_give_two_options():
    rows = [_row('1', 'How long?', ('Short', '5'), ('Long', '10'))]
    result = normalize(rows, 'riskTolerance')

    question = result.template.questions[0]
    assert len(question.options) == 2
    assert [o.id for o in question.options] == ['answer-1-1', 'answer-1-2']
    assert [o.value for o in question.options] == [5, 10]
    assert result.warnings == []


def test_template_metadata_defaults():
    result = normalize([_row('1', 'Q', ('A', '1'))], 'riskTolerance')
    template = result.template

    assert template.id == 'riskTolerance-template'
    assert template.section == 'riskTolerance'
    assert template.title == 'RiskTolerance Questionnaire'
    assert template.description == 'Generated from CSV upload'


def test_smart_quotes_and_line_endings_are_cleaned():
    rows = [_row('1', '“Don’t” panic\r\nnow', ('It‘s fine\rreally', '3'))]
    question = normalize(rows, 'riskTolerance').template.questions[0]

    assert question.text == '"Don\'t" panic\nnow'
    assert question.options[0].text == "It's fine\nreally"


def test_clean_text_handles_empty():
    assert clean_text(None) == ''
    assert clean_text('') == ''


def test_values_are_clamped():
    rows = [_row('1', 'Q', ('Negative', '-4'), ('Huge', '99'), ('Decimal', '12.0'))]
    options = normalize(rows, 'riskTolerance').template.questions[0].options

    assert [o.value for o in options] == [0, 30, 12]


def test_non_numeric_value_drops_option_with_warning():
    rows = [_row('1', 'Q', ('Good', '5'), ('Bad', 'lots'))]
    result = normalize(rows, 'riskTolerance')

    assert [o.text for o in result.template.questions[0].options] == ['Good']
    assert len(result.warnings) == 1
    assert 'answer2_value' in result.warnings[0]


def test_rows_missing_number_or_text_are_skipped():
    rows = [
        _row('', 'No number', ('A', '1')),
        _row('2', '', ('A', '1')),
        _row('3', 'Valid', ('A', '1')),
    ]
    result = normalize(rows, 'riskTolerance')

    assert [q.id for q in result.template.questions] == ['3']
    assert len(result.warnings) == 2


def test_unknown_section_is_rejected():
    with pytest.raises(ValidationError):
        normalize([], 'retirement')


def test_rows_round_trip():
    rows = [
        _row('1', 'First', ('A', '0'), ('B', '10'), ('C', '20'), ('D', '25'), ('E', '30')),
        _row('2', 'Second', ('Only', '7')),
        _row('3', 'Third'),
    ]
    template = normalize(rows, 'riskTolerance').template

    assert template_to_rows(template) == rows


def test_round_trip_folds_smart_quotes():
    rows = [_row('1', 'It’s “quoted”', ('Yes’', '4'))]
    back = template_to_rows(normalize(rows, 'riskTolerance').template)

    assert back[0]['question_text'] == 'It\'s "quoted"'
    assert back[0]['answer1_text'] == "Yes'"


def test_export_header_is_canonical(template):
    lines = template_to_csv(template).split('\n')

    assert lines[0] == ','.join(CSV_HEADER)
    assert CSV_HEADER[:4] == ['question_number', 'question_text', 'answer1_text', 'answer1_value']
    assert CSV_HEADER[-1] == 'answer5_value'
    assert len(CSV_HEADER) == 12


def test_export_escapes_separators_quotes_and_newlines():
    row = _row('1', 'Hello, "world"\nagain', ('plain', '1'))
    text = rows_to_csv([row])

    assert '"Hello, ""world""\nagain"' in text
    assert ',plain,1,' in text


def test_csv_text_round_trip(template):
    rows = parse_csv(template_to_csv(template))
    again = normalize(rows, 'riskTolerance').template

    assert [q.text for q in again.questions] == [q.text for q in template.questions]
    assert [[o.value for o in q.options] for q in again.questions] == \
        [[o.value for o in q.options] for q in template.questions]


def test_parse_csv_handles_bom_and_latin1():
    header = ','.join(CSV_HEADER)
    utf8 = ('\ufeff' + header + '\n1,Café,Oui,5,,,,,,,,\n').encode('utf-8')
    latin1 = (header + '\n1,Café,Oui,5,,,,,,,,\n').encode('latin-1')

    for content in (utf8, latin1):
        rows = parse_csv(content)
        assert rows[0]['question_number'] == '1'
        assert rows[0]['question_text'] == 'Café'


def test_text_whitespace_survives_round_trip():
    rows = [_row('1', '  Indented question ', (' padded ', '4'))]
    template = normalize(rows, 'riskTolerance').template

    assert template.questions[0].text == '  Indented question '
    assert template_to_rows(template) == rows


def test_whitespace_only_text_counts_as_empty():
    rows = [_row('1', '   ', ('A', '1')), _row('2', 'Q', ('  ', '1'), ('B', '2'))]
    result = normalize(rows, 'riskTolerance')

    assert [q.id for q in result.template.questions] == ['2']
    assert [o.text for o in result.template.questions[0].options] == ['B']
