"""
Unit tests for the generic heuristic extractor.
"""

from bs4 import BeautifulSoup

from pipeline.heuristics import HeuristicExtractor, apply_supplement_rules
from pipeline.models import Strategy

ABOUT_ROLE = (
    "Acme is hiring a senior data engineer to own the pipelines that feed our "
    "analytics platform. You will design batch and streaming jobs, improve data "
    "quality and mentor other engineers on the team."
)


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


class TestJobContainer:

    HTML = f"""
    <html><head><title>Careers | Acme</title></head><body>
      <nav>Home Jobs About</nav>
      <div class="cookie-banner">We use cookies to improve your experience</div>
      <div class="page">
        <div class="job-posting-content">
          <h1>Senior Data Engineer</h1>
          <p>{ABOUT_ROLE}</p>
          <dl><dt>Location</dt><dd>Nairobi, Kenya</dd></dl>
          <dl><dt>Closing date</dt><dd>15 March 2025</dd></dl>
          <h3>Requirements</h3>
          <ul><li>Python</li><li>Airflow</li></ul>
          <p>Salary: $120,000 - $150,000 per year. Full-time position.</p>
        </div>
      </div>
      <footer>Copyright Acme Ltd</footer>
    </body></html>
    """

    def test_job_container_selected(self):
        result = HeuristicExtractor().extract(soup_of(self.HTML), url="https://acme.io/careers/7")

        assert result.strategy == Strategy.HEURISTIC
        assert result.method == "heuristic:job_container"
        assert result.confidence == 0.50
        assert result.url == "https://acme.io/careers/7"
        assert "senior data engineer to own the pipelines" in result.text
        assert "• Python" in result.text

    def test_noise_removed(self):
        result = HeuristicExtractor().extract(soup_of(self.HTML))

        assert "Home Jobs About" not in result.text
        assert "cookies" not in result.text
        assert "Copyright" not in result.text

    def test_structured_fields(self):
        fields = HeuristicExtractor().extract(soup_of(self.HTML)).structured_fields

        assert fields["title"] == "Senior Data Engineer"
        assert fields["location"] == "Nairobi, Kenya"
        assert fields["deadline"] == "2025-03-15"
        assert fields["requirements"] == ["Python", "Airflow"]
        assert fields["salary"] == "$120,000 - $150,000 per year"
        assert fields["employment_type"] == "Full-time"

    def test_tighter_nested_container_preferred(self):
        html = f"""
        <html><body>
          <div class="job-details">
            <div class="job-description"><p>{ABOUT_ROLE}</p></div>
            <p>Apply today</p>
          </div>
        </body></html>
        """
        result = HeuristicExtractor().extract(soup_of(html))

        assert result.method == "heuristic:job_container"
        assert "Apply today" not in result.text

    def test_hidden_elements_removed(self):
        html = f"""
        <html><body><div class="job-body">
          <p>{ABOUT_ROLE}</p>
          <div style="display: none">Internal referral code 1234</div>
          <div aria-hidden="true">Screen reader junk</div>
        </div></body></html>
        """
        result = HeuristicExtractor().extract(soup_of(html))

        assert "referral code" not in result.text
        assert "Screen reader junk" not in result.text


class TestFallbackLevels:

    def test_content_root(self):
        html = f"<html><body><main><p>{ABOUT_ROLE}</p></main></body></html>"
        result = HeuristicExtractor().extract(soup_of(html))

        assert result.method == "heuristic:content_root"
        assert result.confidence == 0.45

    def test_paragraphs(self):
        html = f"<html><body><p>{ABOUT_ROLE}</p><ul><li>Remote friendly</li></ul></body></html>"
        result = HeuristicExtractor().extract(soup_of(html))

        assert result.method == "heuristic:paragraphs"
        assert result.text.endswith("• Remote friendly")

    def test_short_text_still_returned_from_best_level(self):
        result = HeuristicExtractor().extract(soup_of("<html><body><p>Hello world</p></body></html>"))

        assert result.text == "Hello world"
        assert result.text_length < 100

    def test_empty_page_returns_none(self):
        assert HeuristicExtractor().extract(soup_of("<html><body></body></html>")) is None

    def test_min_length_is_configurable(self):
        html = "<html><body><main><p>Short role summary text.</p></main></body></html>"
        result = HeuristicExtractor(min_length=10).extract(soup_of(html))
        assert result.method == "heuristic:content_root"


class TestSupplementRules:

    def test_currency_ranges_and_contract_type(self):
        fields = apply_supplement_rules("Pay: £40,000 - £50,000 per annum, contract role, hybrid")

        assert fields["salary"] == "£40,000 - £50,000 per annum"
        assert fields["employment_type"] == "contract"
        assert fields["work_arrangement"] == "hybrid"

    def test_higher_confidence_rule_wins(self):
        assert apply_supplement_rules("€50k or $60k")["salary"] == "$60k"

    def test_nothing_matched(self):
        assert apply_supplement_rules("A lovely place to work") == {}
        assert apply_supplement_rules("") == {}
