"""
Unit tests for embedded-data mining (JSON-LD, microdata, script state).
"""

import base64
import json

import httpx
import pytest
from bs4 import BeautifulSoup

from core.net import HTTPClient
from pipeline.embedded import EmbeddedDataMiner, coerce_job_fields, find_job_data, is_job_related
from pipeline.jsonld import JSONLDExtractor, MicrodataExtractor, format_salary
from pipeline.models import Strategy

LONG_DESCRIPTION = (
    "We are looking for a backend engineer to design, build and operate the services "
    "behind our hiring platform. You will work closely with product and data teams."
)


def page(body: str, head: str = "") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


class TestJSONLD:

    def test_extract_job_posting(self):
        html = """
        <script type="application/ld+json">
        {
          "@context": "https://schema.org",
          "@type": "JobPosting",
          "title": "Backend Engineer",
          "hiringOrganization": {"@type": "Organization", "name": "Acme"},
          "jobLocation": {"address": {"addressLocality": "Berlin", "addressCountry": "DE"}},
          "employmentType": "FULL_TIME",
          "datePosted": "2025-01-01",
          "validThrough": "2025-02-15T00:00:00Z",
          "description": "<p>Build <b>APIs</b>.</p><ul><li>Python</li></ul>",
          "baseSalary": {"currency": "EUR", "value": {"minValue": 70000, "maxValue": 90000, "unitText": "YEAR"}}
        }
        </script>
        """
        fields = JSONLDExtractor().extract(BeautifulSoup(html, "lxml"))

        assert fields["title"] == "Backend Engineer"
        assert fields["company"] == "Acme"
        assert fields["location"] == "Berlin, DE"
        assert fields["employment_type"] == "Full Time"
        assert fields["posted_date"] == "2025-01-01"
        assert fields["deadline"] == "2025-02-15"
        assert fields["salary"] == "EUR 70,000 - 90,000 per year"
        assert "Build APIs." in fields["description"]
        assert "• Python" in fields["description"]

    def test_graph_and_list_wrappers(self):
        html = """
        <script type="application/ld+json">
        {"@graph": [{"@type": "WebPage"}, {"@type": ["JobPosting"], "title": "Data Analyst"}]}
        </script>
        """
        assert JSONLDExtractor().extract(BeautifulSoup(html, "lxml"))["title"] == "Data Analyst"

    def test_malformed_block_is_recovered(self):
        html = """
        <script type="application/ld+json">
        {"@type": "JobPosting", "title": "Designer", "description": "Design things"}
        <!-- trailing junk -->
        </script>
        """
        fields = JSONLDExtractor().extract(BeautifulSoup(html, "lxml"))
        assert fields["title"] == "Designer"

    def test_telecommute_location(self):
        html = '<script type="application/ld+json">{"@type": "JobPosting", "title": "SRE", "jobLocationType": "TELECOMMUTE"}</script>'
        assert JSONLDExtractor().extract(BeautifulSoup(html, "lxml"))["location"] == "Remote"

    def test_no_job_posting(self):
        html = '<script type="application/ld+json">{"@type": "Organization", "name": "Acme"}</script>'
        assert JSONLDExtractor().extract(BeautifulSoup(html, "lxml")) is None

    @pytest.mark.parametrize("salary,expected", [
        ({"currency": "USD", "value": {"value": 50, "unitText": "HOUR"}}, "USD 50 per hour"),
        ("$100k", "$100k"),
        (None, None),
    ])
    def test_format_salary(self, salary, expected):
        assert format_salary(salary) == expected


class TestMicrodata:

    def test_nested_scope_properties_not_mixed(self):
        html = """
        <div itemscope itemtype="https://schema.org/JobPosting">
          <h1 itemprop="title">QA Engineer</h1>
          <div itemprop="hiringOrganization" itemscope itemtype="https://schema.org/Organization">
            <span itemprop="name">Acme</span>
          </div>
          <div itemprop="description"><p>Test everything.</p></div>
        </div>
        """
        fields = MicrodataExtractor().extract(BeautifulSoup(html, "lxml"))
        assert fields["title"] == "QA Engineer"
        assert fields["company"] == "Acme"
        assert fields["description"] == "Test everything."


class TestJobDataHelpers:

    def test_is_job_related(self):
        assert is_job_related({"jobTitle": "x", "companyName": "y"})
        assert not is_job_related({"user": "x", "theme": "dark"})

    def test_find_job_data_nested(self):
        data = {"props": {"pageProps": {"posting": {"jobTitle": "Engineer", "companyName": "Acme"}}}}
        assert find_job_data(data) == {"jobTitle": "Engineer", "companyName": "Acme"}

    def test_coerce_aliases(self):
        fields = coerce_job_fields({
            "jobTitle": "Engineer",
            "employer": {"name": "Acme"},
            "jobDescription": "<p>Write code</p>",
            "duties": ["Ship features"],
        })
        assert fields == {
            "title": "Engineer",
            "company": "Acme",
            "description": "Write code",
            "responsibilities": ["Ship features"],
        }


class TestEmbeddedDataMiner:

    def test_json_ld_preferred(self):
        html = page(
            "",
            head='<script type="application/ld+json">'
                 + json.dumps({"@type": "JobPosting", "title": "Backend Engineer",
                               "hiringOrganization": {"name": "Acme"}, "description": LONG_DESCRIPTION})
                 + "</script>",
        )
        miner = EmbeddedDataMiner()
        candidate = miner.mine(html, "https://acme.io/jobs/1", min_text_length=100)
        result = miner.to_result(candidate, "https://acme.io/jobs/1")

        assert candidate.method == "json_ld"
        assert result.strategy == Strategy.EMBEDDED_DATA
        assert result.confidence == 0.95
        assert result.structured_fields["company"] == "Acme"

    def test_script_assignment(self):
        state = {"job": {"title": "Platform Engineer", "company": "Acme", "description": LONG_DESCRIPTION}}
        html = page(f"<script>var jobState = {json.dumps(state)}; render(jobState);</script>")
        candidate = EmbeddedDataMiner().mine(html, "https://acme.io/careers", min_text_length=100)

        assert candidate.method == "script_assignment"
        assert candidate.fields["title"] == "Platform Engineer"

    def test_next_data_hydration(self):
        data = {"props": {"pageProps": {"job": {"jobTitle": "ML Engineer", "companyName": "Acme",
                                                "jobDescription": LONG_DESCRIPTION}}}}
        html = page(f'<div id="__next"></div><script id="__NEXT_DATA__" type="application/json">{json.dumps(data)}</script>')
        candidate = EmbeddedDataMiner().mine(html, "https://acme.io/careers", min_text_length=100)

        assert candidate.method == "hydration"
        assert candidate.fields["title"] == "ML Engineer"

    def test_initial_state_followed_by_more_code(self):
        body = ('<script>window.__INITIAL_STATE__ = {"position": {"title": "Analyst", '
                '"location": "Paris", "description": "Analyse data"}}; window.x = 1;</script>')
        candidate = EmbeddedDataMiner().mine(page(body), "https://acme.io/careers")
        assert candidate.fields["title"] == "Analyst"

    def test_base64_payload(self):
        payload = base64.b64encode(json.dumps(
            {"title": "Support Engineer", "company": "Acme", "description": "Help customers"}
        ).encode()).decode()
        html = page(f'<object data="data:application/json;base64,{payload}"></object>')
        candidate = EmbeddedDataMiner().mine(html, "https://acme.io/careers")

        assert candidate.method == "base64"
        assert candidate.fields["company"] == "Acme"

    def test_json_in_comment(self):
        html = page('<!-- {"title": "Writer", "company": "Acme", "description": "Write docs"} -->')
        candidate = EmbeddedDataMiner().mine(html, "https://acme.io/careers")
        assert candidate.method == "comment"

    def test_endpoint_only_candidate_has_no_result(self):
        html = page("<script>fetch('/api/jobs/42').then(r => r.json())</script>")
        miner = EmbeddedDataMiner()
        candidate = miner.mine(html, "https://acme.io/careers")

        assert candidate.method == "api_endpoint"
        assert "https://acme.io/api/jobs/42" in candidate.endpoints
        assert miner.to_result(candidate) is None

    def test_nothing_found(self):
        assert EmbeddedDataMiner().mine(page("<p>Hello</p>"), "https://acme.io/") is None


class TestFollowEndpoints:

    @pytest.mark.asyncio
    async def test_same_origin_endpoint_followed(self):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, json={"data": {"jobTitle": "Engineer", "companyName": "Acme",
                                                      "description": LONG_DESCRIPTION}})

        client = HTTPClient(transport=httpx.MockTransport(handler))
        candidate = await EmbeddedDataMiner().follow_endpoints(
            ["https://other.io/api/jobs/1", "https://acme.io/api/jobs/1"],
            client,
            "https://acme.io/careers/1",
        )

        assert requested == ["https://acme.io/api/jobs/1"]
        assert candidate.method == "api_endpoint"
        assert candidate.fields["title"] == "Engineer"
