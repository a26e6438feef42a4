import time

import pytest
from itsdangerous import URLSafeTimedSerializer

from nlw_questionnaire.errors import LinkError, NotFoundError, ValidationError
from nlw_questionnaire.services.link_service import LINK_SALT, LinkService


@pytest.fixture
def links(engine):
    return engine.links


def test_redeem_grants_section(links, engine, client_record):
    token = links.issue_link(client_record.id, 'investmentPolicy')
    client, section = links.redeem(token)

    assert section == 'investmentPolicy'
    assert client.id == client_record.id
    stored = engine.client_store.get(client_record.id).available_sections
    assert 'investmentPolicy' in stored
    assert 'riskTolerance' in stored


def test_redeem_never_revokes(links, engine, client_record):
    token = links.issue_link(client_record.id, 'riskTolerance')
    links.redeem(token)
    links.redeem(token)

    assert engine.client_store.get(client_record.id).available_sections == ['riskTolerance', 'clientUpdate']


def test_issue_for_unknown_client(links):
    with pytest.raises(NotFoundError):
        links.issue_link(404, 'riskTolerance')


def test_issue_for_unknown_section(links, client_record):
    with pytest.raises(ValidationError):
        links.issue_link(client_record.id, 'taxes')


def test_tampered_token_fails(links, client_record):
    token = links.issue_link(client_record.id, 'riskTolerance')
    with pytest.raises(LinkError) as exc:
        links.redeem(token[:-2] + ('AA' if not token.endswith('AA') else 'BB'))
    assert exc.value.status_code == 401
    assert exc.value.message == "Invalid or expired token"


def test_token_signed_with_other_secret_fails(engine, client_record):
    other = LinkService('another-secret', engine.client_store)
    token = other.issue_link(client_record.id, 'riskTolerance')

    with pytest.raises(LinkError):
        engine.links.redeem(token)


def test_expired_token_fails(engine, client_record):
    links = LinkService('test-link-secret', engine.client_store, max_age_days=0)
    token = links.issue_link(client_record.id, 'riskTolerance')
    time.sleep(1.1)

    with pytest.raises(LinkError):
        links.redeem(token)


def test_malformed_payload_fails(engine, client_record):
    serializer = URLSafeTimedSerializer('test-link-secret')
    for payload in ({'cid': 'one', 'section': 'riskTolerance'},
                    {'cid': client_record.id, 'section': 'taxes', 'num': '1234567'},
                    ['not', 'a', 'dict']):
        with pytest.raises(LinkError):
            engine.links.redeem(serializer.dumps(payload, salt=LINK_SALT))


def test_deleted_client_token_fails(links, engine, client_record):
    token = links.issue_link(client_record.id, 'riskTolerance')
    engine.client_store.delete(client_record.id)

    with pytest.raises(LinkError):
        links.redeem(token)


def test_build_link():
    link = LinkService.build_link('abc.def', 'riskTolerance', 'https://portal.example.com/')
    assert link == 'https://portal.example.com/questionnaire/riskTolerance?token=abc.def'
