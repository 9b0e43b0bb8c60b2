"""Extraction of job listings and job details from LinkedIn pages.

Detail extraction tries two strategies in order:
1. JSON-LD ``JobPosting`` blocks embedded in the page
2. CSS selectors over the several top-card layouts LinkedIn serves
"""

import re
from typing import Any

import structlog
from playwright.async_api import ElementHandle, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from jobharvest.models import JobCard, JobData, MalformedListing

logger = structlog.get_logger(logger_name=__name__)

RESULTS_SELECTOR = ".jobs-search__results-list"
CARD_SELECTOR = "div.base-card[data-entity-urn]"
NEXT_PAGE_SELECTOR = 'button[aria-label="View next page"]'

JOB_URN_RE = re.compile(r"urn:li:jobPosting:(\d+)")
COMPANY_ID_RE = re.compile(r"/company/([^/?]+)")
COUNT_RE = re.compile(r"(\d[\d,.]*)\s*\+?\s*results?", re.IGNORECASE)
NUMBER_RE = re.compile(r"(\d[\d,.]*)")

TOTAL_COUNT_SELECTORS = (
    ".results-context-header__job-count",
    ".jobs-search-results-list__subtitle",
    ".jobs-search-results__subtitle",
    "small.jobs-search-results-list__text",
)

DETAIL_CONTAINER_SELECTOR = (
    ".jobs-unified-top-card, .top-card-layout, .decorated-job-posting__details"
)

JSON_LD_SCRIPT = """
() => {
    for (const script of document.querySelectorAll('script[type="application/ld+json"]')) {
        try {
            const data = JSON.parse(script.textContent || '');
            if (data && data['@type'] === 'JobPosting') return data;
        } catch (e) {}
    }
    return null;
}
"""

HTML_DETAIL_SCRIPT = """
() => {
    const text = (...selectors) => {
        for (const s of selectors) {
            const el = document.querySelector(s);
            if (el && el.textContent && el.textContent.trim()) return el.textContent.trim();
        }
        return '';
    };
    const html = (...selectors) => {
        for (const s of selectors) {
            const el = document.querySelector(s);
            if (el && el.innerHTML && el.innerHTML.trim()) return el.innerHTML.trim();
        }
        return '';
    };
    const attr = (name, ...selectors) => {
        for (const s of selectors) {
            const el = document.querySelector(s);
            const value = el && el.getAttribute(name);
            if (value) return value;
        }
        return '';
    };
    const idMatch = window.location.href.match(/(?:\\/view\\/|currentJobId=)(\\d+)/);
    return {
        job_id: idMatch ? idMatch[1] : '',
        title: text('.jobs-unified-top-card__job-title', '.top-card-layout__title',
                    '.topcard__title', 'h1.job-title', 'h2.top-card-layout__title'),
        company: text('.jobs-unified-top-card__company-name', '.top-card-layout__entity-info a',
                      '.topcard__org-name-link',
                      '.job-details-jobs-unified-top-card__company-name a'),
        company_href: attr('href', '.jobs-unified-top-card__company-name a',
                           '.top-card-layout__entity-info a', '.topcard__org-name-link'),
        location: text('.jobs-unified-top-card__bullet', '.top-card-layout__second-subline',
                       '.topcard__flavor--bullet', '.job-details-jobs-unified-top-card__bullet'),
        description: html('.jobs-description__content', '.description__text',
                          '.description__text--rich', '.show-more-less-html__markup',
                          '.jobs-box__html-content'),
        employment_type: text('.jobs-unified-top-card__job-insight--EMPLOYMENT_TYPE',
                              '.description__job-criteria-text--criteria'),
        seniority_level: text('.jobs-unified-top-card__job-insight--SENIORITY_LEVEL',
                              '.description__job-criteria-text'),
        posted_date: text('.jobs-unified-top-card__posted-date', '.topcard__flavor--metadata',
                          '.posted-time-ago__text'),
        apply_url: attr('href', '.jobs-apply-button', 'a[data-tracking-control-name*="apply"]'),
        url: window.location.href,
    };
}
"""


# =============================================================================
# JSON-LD normalization
# =============================================================================


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _as_text(value: Any) -> str:
    """Flatten a JSON-LD value (string, number, list or named object) to text."""
    value = _first(value)
    if value is None:
        return ""
    if isinstance(value, dict):
        value = value.get("name") or value.get("value") or ""
    if isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _to_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def normalize_job_posting(data: dict[str, Any], fallback_job_id: str = "") -> JobData | None:
    """Map a schema.org JobPosting onto JobData. None when it has no title."""
    title = _as_text(data.get("title"))
    if not title:
        return None

    identifier = data.get("identifier")
    job_id = ""
    if isinstance(identifier, dict):
        job_id = _as_text(identifier.get("value"))
    job_id = job_id or fallback_job_id

    organization = data.get("hiringOrganization")
    if not isinstance(organization, dict):
        organization = {"name": organization} if isinstance(organization, str) else {}
    company_id = None
    same_as = _as_text(organization.get("sameAs"))
    if same_as:
        match = COMPANY_ID_RE.search(same_as)
        company_id = match.group(1) if match else None

    location = ""
    job_location = _first(data.get("jobLocation"))
    if isinstance(job_location, dict):
        address = job_location.get("address")
        if isinstance(address, dict):
            location = _as_text(address.get("addressLocality")) or _as_text(
                address.get("addressRegion")
            )
        else:
            location = _as_text(address)

    employment_type = data.get("employmentType")
    if isinstance(employment_type, list):
        employment_type = ", ".join(t for t in (_as_text(v) for v in employment_type) if t)
    else:
        employment_type = _as_text(employment_type)

    salary_min = salary_max = None
    salary_currency = None
    base_salary = data.get("baseSalary")
    if isinstance(base_salary, dict):
        salary_currency = _as_text(base_salary.get("currency")) or None
        value = base_salary.get("value")
        if isinstance(value, dict):
            salary_min = _to_float(value.get("minValue", value.get("value")))
            salary_max = _to_float(value.get("maxValue", value.get("value")))

    apply_url = data.get("directApply")
    return JobData(
        job_id=job_id,
        title=title,
        company=_as_text(organization.get("name")),
        company_id=company_id,
        location=location,
        description=_as_text(data.get("description")),
        employment_type=employment_type or None,
        seniority_level=_as_text(data.get("seniorityLevel")) or None,
        industry=_as_text(data.get("industry")) or None,
        salary_min=salary_min,
        salary_max=salary_max,
        salary_currency=salary_currency,
        url=_as_text(data.get("url")),
        apply_url=apply_url if isinstance(apply_url, str) else None,
        posted_date=_as_text(data.get("datePosted")),
    )


def parse_result_count(text: str | None) -> int | None:
    """Read "1,234 results" style counters."""
    if not text:
        return None
    match = COUNT_RE.search(text) or NUMBER_RE.search(text)
    if not match:
        return None
    digits = re.sub(r"[,.]", "", match.group(1))
    return int(digits) if digits else None


# =============================================================================
# Parser
# =============================================================================


class Parser:
    """Reads listings and job details from the page it is bound to."""

    def __init__(self, page: Page):
        self.page = page

    async def wait_for_results(self, timeout_ms: int = 10000) -> bool:
        """Wait for the results list. False on timeout."""
        try:
            await self.page.wait_for_selector(RESULTS_SELECTOR, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return False
        return True

    async def _text(self, element: ElementHandle, selector: str) -> str:
        child = await element.query_selector(selector)
        if child is None:
            return ""
        return (await child.inner_text()).strip()

    async def extract_job_cards(self) -> tuple[list[JobCard], list[MalformedListing]]:
        """Parse every listing node on the current results page."""
        cards: list[JobCard] = []
        malformed: list[MalformedListing] = []

        elements = await self.page.query_selector_all(CARD_SELECTOR)
        for index, element in enumerate(elements):
            try:
                urn = await element.get_attribute("data-entity-urn") or ""
                match = JOB_URN_RE.search(urn)
                if not match:
                    malformed.append(
                        MalformedListing(index=index, reason=f"Unrecognized listing urn: {urn!r}")
                    )
                    continue
                cards.append(
                    JobCard(
                        job_id=match.group(1),
                        selector=f'div.base-card[data-entity-urn="{urn}"]',
                        title=await self._text(element, "h3.base-search-card__title"),
                        company=await self._text(element, "h4.base-search-card__subtitle"),
                        location=await self._text(element, "span.job-search-card__location"),
                    )
                )
            except PlaywrightError as e:
                logger.warning("Failed to parse job card", index=index, error=str(e))
                malformed.append(MalformedListing(index=index, reason=str(e)))

        logger.info("Extracted job cards", count=len(cards), malformed=len(malformed))
        return cards, malformed

    async def extract_total_count(self) -> int | None:
        """Result count shown above the list, None when it cannot be read."""
        for selector in TOTAL_COUNT_SELECTORS:
            try:
                element = await self.page.query_selector(selector)
                if element is None:
                    continue
                count = parse_result_count(await element.inner_text())
            except PlaywrightError:
                continue
            if count is not None:
                logger.info("Extracted job count", count=count, selector=selector)
                return count

        logger.warning("No job count found on page")
        return None

    async def try_json_ld_extraction(self, fallback_job_id: str = "") -> JobData | None:
        try:
            data = await self.page.evaluate(JSON_LD_SCRIPT)
        except PlaywrightError as e:
            logger.warning("JSON-LD extraction failed", error=str(e))
            return None
        if not isinstance(data, dict):
            return None
        return normalize_job_posting(data, fallback_job_id)

    async def try_html_extraction(self, fallback_job_id: str = "") -> JobData | None:
        try:
            try:
                await self.page.wait_for_selector(DETAIL_CONTAINER_SELECTOR, timeout=3000)
            except PlaywrightTimeoutError:
                logger.debug("No job detail container found, extracting anyway")
            data = await self.page.evaluate(HTML_DETAIL_SCRIPT)
        except PlaywrightError as e:
            logger.warning("HTML extraction failed", error=str(e))
            return None
        if not isinstance(data, dict):
            return None

        job_id = data.get("job_id") or fallback_job_id
        if not job_id or not data.get("title"):
            logger.warning(
                "HTML extraction incomplete",
                has_id=bool(job_id),
                has_title=bool(data.get("title")),
            )
            return None

        company_match = COMPANY_ID_RE.search(data.get("company_href") or "")
        return JobData(
            job_id=job_id,
            title=data["title"],
            company=data.get("company") or "",
            company_id=company_match.group(1) if company_match else None,
            location=data.get("location") or "",
            description=data.get("description") or "",
            employment_type=data.get("employment_type") or None,
            seniority_level=data.get("seniority_level") or None,
            url=data.get("url") or "",
            apply_url=data.get("apply_url") or None,
            posted_date=data.get("posted_date") or "",
        )

    async def has_next_page(self) -> bool:
        try:
            button = await self.page.query_selector(NEXT_PAGE_SELECTOR)
            if button is None:
                return False
            return await button.get_attribute("disabled") is None
        except PlaywrightError:
            return False

    async def click_next_page(self, timeout_ms: int = 10000) -> bool:
        """Advance to the next results page. False when there is none."""
        if not await self.has_next_page():
            return False
        try:
            await self.page.click(NEXT_PAGE_SELECTOR, timeout=timeout_ms)
            await self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightError as e:
            logger.error("Failed to navigate to next page", error=str(e))
            return False
        return True
