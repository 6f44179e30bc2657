# File: tests/test_derive.py
import pytest

from spider_stream.derive import (
    base_domain,
    cloud_buckets,
    derive,
    derive_async,
    find_buckets,
    find_subdomains,
    subdomains,
)
from spider_stream.errors import DomainResolutionError
from spider_stream.report import OutputType, Report


def page(body: str, url: str = "https://www.example.com/") -> Report:
    return Report(url, OutputType.PAGE, status_code=200, body=body, origin=url, length=len(body))


def outputs(reports, output_type):
    return [r.output for r in reports if r.output_type is output_type]


def test_subdomains_and_buckets_do_not_cross():
    report = page("see backup.s3.amazonaws.com and old.example.com")
    assert outputs(subdomains(report), OutputType.DOMAIN) == ["old.example.com"]
    assert outputs(cloud_buckets(report), OutputType.CLOUD_BUCKET) == ["backup.s3.amazonaws.com"]


@pytest.mark.parametrize(
    "hostname,expected",
    [
        ("www.example.com", "example.com"),
        ("a.b.example.co.uk", "example.co.uk"),
        ("WWW.Example.COM", "example.com"),
    ],
)
def test_base_domain(hostname, expected):
    assert base_domain(hostname) == expected


@pytest.mark.parametrize("hostname", ["", "127.0.0.1", "localhost", "co.uk"])
def test_base_domain_failures(hostname):
    with pytest.raises(DomainResolutionError):
        base_domain(hostname)


def test_find_subdomains_boundaries():
    text = (
        '<a href="https://API.example.com/v1">x</a> '
        "mail.example.com mail.example.com "
        "example.com "
        "www.example.com.evil.org "
        "notexample.com"
    )
    assert find_subdomains(text, "example.com") == ["api.example.com", "mail.example.com"]


def test_find_buckets_styles():
    text = (
        "https://assets.s3.amazonaws.com/a.png "
        "https://logs.s3-eu-west-1.amazonaws.com/ "
        "http://site.s3-website-us-east-1.amazonaws.com "
        "https://s3.amazonaws.com/path-style-bucket/key "
        "https://s3-us-west-2.amazonaws.com/regional-bucket/key "
        "s3://raw-bucket/key"
    )
    found = find_buckets(text)
    assert "assets.s3.amazonaws.com" in found
    assert "logs.s3-eu-west-1.amazonaws.com" in found
    assert any(b.startswith("site.s3-website-us-east-1") for b in found)
    assert "s3.amazonaws.com/path-style-bucket" in found
    assert "s3-us-west-2.amazonaws.com/regional-bucket" in found
    assert "s3://raw-bucket" in found


def test_empty_body_gives_nothing():
    result = derive(page(""))
    assert result.reports == []
    assert result.error is None


def test_derive_keeps_buckets_when_domain_fails():
    report = page("old.example.com and backup.s3.amazonaws.com", url="http://127.0.0.1:8080/")
    result = derive(report)
    assert isinstance(result.error, DomainResolutionError)
    assert outputs(result.reports, OutputType.CLOUD_BUCKET) == ["backup.s3.amazonaws.com"]
    assert outputs(result.reports, OutputType.DOMAIN) == []


def test_subdomains_raise_for_ip_origin():
    with pytest.raises(DomainResolutionError):
        subdomains(page("old.example.com", url="http://10.0.0.1/"))


def test_derived_records_carry_page_provenance():
    report = page("old.example.com")
    (child,) = derive(report).reports
    assert child.origin == report.origin
    assert child.status_code == 200
    assert child.to_dict()["type"] == "domain"


@pytest.mark.asyncio()
async def test_derive_async_matches_sync():
    report = page("see backup.s3.amazonaws.com and old.example.com")
    result = await derive_async(report)
    assert result == derive(report)
