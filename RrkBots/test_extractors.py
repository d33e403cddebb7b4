"""
Tests for grid URL, notice page and company listing extraction.
"""

from config_schemas import DEFAULT_COMPANY_COLUMNS
from conftest import company_report, grid_response
from extractors import extract_page_info, extract_urls, parse_company_rows

BASE_URL = "https://rrk.ir"


def test_extract_urls_makes_relative_links_absolute():
    response = grid_response(2)
    response["regions"][0]["fetchedData"]["values"].append(["3", '<a href="https://other.example/x">x</a>'])

    urls = extract_urls(response, BASE_URL)

    assert urls == [
        "https://rrk.ir/ords/r/rrs/rrs-front/notice?id=1",
        "https://rrk.ir/ords/r/rrs/rrs-front/notice?id=2",
        "https://other.example/x",
    ]


def test_extract_urls_skips_rows_without_links():
    response = {"regions": [
        {"fetchedData": {"values": [["1", None], ["2", 5], ["3", "<span>no link</span>"], ["4"]]}},
        {"id": "no data"},
    ]}

    assert extract_urls(response, BASE_URL) == []
    assert extract_urls("not json", BASE_URL) == []


def test_extract_page_info(notice_page_html):
    info = extract_page_info(notice_page_html, "https://rrk.ir/n/1")

    assert info.url == "https://rrk.ir/n/1"
    assert info.scraped_at
    assert info.title == "آگهی تاسیس"
    assert info.tracking_number == "140230401234567890"
    assert info.newspaper_number == "22850"
    assert info.publish_count == "اول"
    assert info.company_register_number == "6686"
    assert info.content == "آگهی تأسیس شرکت ایمن سپهر تجارت اروند (با مسئولیت محدود) به شماره ثبت 6686"


def test_extract_page_info_omits_empty_fields(notice_page_html):
    data = extract_page_info(notice_page_html, "https://rrk.ir/n/1").to_json_dict()

    assert "letterPublisher" not in data
    assert data["companyName"] == "ایمن سپهر تجارت اروند"


def test_extract_page_info_other_page_id():
    html = '<span id="P30_TITLE_DISPLAY">عنوان</span>'

    assert extract_page_info(html, "u", page_id=30).title == "عنوان"
    assert extract_page_info(html, "u").title is None


def test_parse_company_rows():
    records = parse_company_rows(company_report(1, 2), DEFAULT_COMPANY_COLUMNS, BASE_URL, "شر")

    assert len(records) == 2
    first = records[0]
    assert first.company_id == "1"
    assert first.company_name == "شرکت 1"
    assert first.national_id == "10000000001"
    assert first.registration_number == "501"
    assert first.postal_code == ""
    assert first.detail_url == "https://rrk.ir/ords/r/rrs/rrs-front/company?id=1"
    assert first.search_query == "شر"
    assert first.scraped_at


def test_parse_company_rows_custom_aliases():
    html = '<table><tr><td headers="C1 NAME_COL">الف</td><td headers="OTHER">x</td></tr></table>'

    records = parse_company_rows(html, {"companyName": "NAME_COL"})

    assert [r.company_name for r in records] == ["الف"]


def test_parse_company_rows_empty_inputs():
    assert parse_company_rows("", DEFAULT_COMPANY_COLUMNS) == []
    assert parse_company_rows({"error": "x"}, DEFAULT_COMPANY_COLUMNS) == []
    assert parse_company_rows(company_report(1, 0), DEFAULT_COMPANY_COLUMNS) == []
