"""
Tests for the credentials.json store.
"""

import json

from config_schemas import FormCredentials, CheckedValue
from credential_store import CredentialStore, strip_query

SEARCH_PAGE = "https://rrk.ir/ords/r/rrs/rrs-front/big_data11"


def test_missing_file_loads_empty(tmp_path):
    store = CredentialStore(tmp_path / "credentials.json")

    assert store.load() == {}
    assert store.get(SEARCH_PAGE) is None


def test_unreadable_file_loads_empty(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text("{not json", encoding="utf-8")

    assert CredentialStore(path).load() == {}


def test_save_strips_query_and_uses_camel_case(tmp_path):
    path = tmp_path / "nested" / "credentials.json"
    store = CredentialStore(path)
    form = FormCredentials(
        flow_id="100",
        salt="SALT",
        current_page_id=CheckedValue(value="11", ck="CK"),
        ajax_identifiers={"P11_SINGLE_SEARCH": "ID/1"},
    )

    store.save(f"{SEARCH_PAGE}?session=123", cookies="A=1; B=2", form_data=form)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert list(raw) == [SEARCH_PAGE]
    entry = raw[SEARCH_PAGE]
    assert entry["cookies"] == "A=1; B=2"
    assert entry["formData"]["flowId"] == "100"
    assert entry["formData"]["currentPageId"] == {"value": "11", "ck": "CK"}
    assert entry["formData"]["ajaxIdentifiers"] == {"P11_SINGLE_SEARCH": "ID/1"}
    # unset fields are not written
    assert "instance" not in entry["formData"]


def test_save_merges_form_data(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text(json.dumps({
        SEARCH_PAGE: {"cookies": "A=1", "formData": {"flowId": "100", "salt": "OLD", "extraKey": "kept"}}
    }), encoding="utf-8")
    store = CredentialStore(path)

    store.save(SEARCH_PAGE, form_data=FormCredentials(salt="NEW"))

    entry = json.loads(path.read_text(encoding="utf-8"))[SEARCH_PAGE]
    assert entry["cookies"] == "A=1"
    assert entry["formData"]["salt"] == "NEW"
    assert entry["formData"]["extraKey"] == "kept"
    # a null in the new data removes the old value
    assert "flowId" not in entry["formData"]


def test_new_cookies_replace_old(tmp_path):
    store = CredentialStore(tmp_path / "credentials.json")
    store.save(SEARCH_PAGE, cookies="A=1")
    store.save(SEARCH_PAGE, cookies="A=2")

    assert store.get(f"{SEARCH_PAGE}?x=y").cookies == "A=2"


def test_clear(tmp_path):
    path = tmp_path / "credentials.json"
    store = CredentialStore(path)
    store.save(SEARCH_PAGE, cookies="A=1")

    store.clear()

    assert json.loads(path.read_text(encoding="utf-8")) == {}
    assert store.get(SEARCH_PAGE) is None


def test_strip_query():
    assert strip_query("https://a/b?c=d") == "https://a/b"
    assert strip_query("https://a/b") == "https://a/b"
