import csv
import io
import logging
from dataclasses import dataclass, field

from ..schemas import AnswerOption, Question, Template, require_section

logger = logging.getLogger(__name__)

MAX_OPTIONS = 5
MIN_OPTION_VALUE = 0
MAX_OPTION_VALUE = 30

CSV_HEADER = ['question_number', 'question_text']
for _slot in range(1, MAX_OPTIONS + 1):
    CSV_HEADER += [f'answer{_slot}_text', f'answer{_slot}_value']

_TEXT_REPLACEMENTS = (
    ('\u2018', "'"),
    ('\u2019', "'"),
    ('\u201c', '"'),
    ('\u201d', '"'),
    ('\r\n', '\n'),
    ('\r', '\n'),
)


@dataclass
class NormalizeResult:
    template: Template
    warnings: list = field(default_factory=list)


def clean_text(text):
    """Fold typographic quotes to ASCII and normalize line endings."""
    if not text:
        return ''
    text = str(text)
    for old, new in _TEXT_REPLACEMENTS:
        text = text.replace(old, new)
    return text


def _cell(row, key, strip=True):
    value = row.get(key)
    if value is None:
        return ''
    value = str(value)
    return value.strip() if strip else value


def _clamp(value):
    return max(MIN_OPTION_VALUE, min(MAX_OPTION_VALUE, value))


def _parse_value(raw):
    try:
        return _clamp(int(raw))
    except ValueError:
        # spreadsheets export "10.0" for integer cells
        return _clamp(int(float(raw)))


def normalize(rows, section):
    """
    Build a Template from ingestion rows. Bad rows and bad option values are
    skipped and reported in `warnings`; the rest still produce a template.
    """
    require_section(section)
    questions = []
    warnings = []
    seen = set()

    for line, row in enumerate(rows, start=1):
        number = _cell(row, 'question_number')
        text = _cell(row, 'question_text', strip=False)
        if not number or not text.strip():
            warnings.append(f"Row {line}: missing question number or text, skipped")
            continue
        if number in seen:
            warnings.append(f"Row {line}: duplicate question number '{number}', skipped")
            continue
        seen.add(number)

        options = []
        for slot in range(1, MAX_OPTIONS + 1):
            option_text = _cell(row, f'answer{slot}_text', strip=False)
            option_value = _cell(row, f'answer{slot}_value')
            if not option_text.strip() or not option_value:
                continue
            try:
                value = _parse_value(option_value)
            except (ValueError, OverflowError):
                warnings.append(
                    f"Row {line}: answer{slot}_value '{option_value}' is not a number, option dropped"
                )
                continue
            options.append(AnswerOption(
                id=f'answer-{number}-{slot}',
                text=clean_text(option_text),
                value=value,
            ))

        questions.append(Question(id=number, text=clean_text(text), options=options))

    for warning in warnings:
        logger.warning(f"CSV ingestion ({section}): {warning}")

    template = Template(
        id=f'{section}-template',
        section=section,
        title=f'{section[:1].upper()}{section[1:]} Questionnaire',
        description='Generated from CSV upload',
        questions=questions,
    )
    return NormalizeResult(template=template, warnings=warnings)


def template_to_rows(template):
    rows = []
    for question in template.questions:
        row = {'question_number': question.id, 'question_text': question.text}
        for slot in range(1, MAX_OPTIONS + 1):
            option = question.options[slot - 1] if slot <= len(question.options) else None
            row[f'answer{slot}_text'] = option.text if option else ''
            row[f'answer{slot}_value'] = str(option.value) if option else ''
        rows.append(row)
    return rows


def rows_to_csv(rows):
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=CSV_HEADER, lineterminator='\n',
                            quoting=csv.QUOTE_MINIMAL, extrasaction='ignore')
    writer.writeheader()
    for row in rows:
        writer.writerow({key: row.get(key, '') for key in CSV_HEADER})
    return output.getvalue()


def template_to_csv(template):
    return rows_to_csv(template_to_rows(template))


def parse_csv(content):
    """Read CSV text (or bytes) into a list of row dicts keyed by the header."""
    if isinstance(content, bytes):
        try:
            content = content.decode('utf-8-sig')
        except UnicodeDecodeError:
            content = content.decode('latin-1')
    elif content.startswith('\ufeff'):
        content = content[1:]

    reader = csv.DictReader(io.StringIO(content, newline=''))
    if reader.fieldnames:
        reader.fieldnames = [name.strip() for name in reader.fieldnames]
    return [dict(row) for row in reader]
