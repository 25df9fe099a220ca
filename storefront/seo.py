"""Meta title/description/keyword generation for categories."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_openai import ChatOpenAI
from motor.motor_asyncio import AsyncIOMotorDatabase

from .config import settings

logger = logging.getLogger(__name__)

PLACEHOLDER_COMPANIES = {"", "Your Company", "ECommerce"}
FALLBACK_COMPANY = "Your Store"

PROMPT = """Generate high-quality, professional SEO content for an e-commerce {subject}.

Requirements:
1. Meta title: an engaging, keyword-rich title (max 50 characters) that ends with " | {company}"
2. Meta description: a compelling description (140-155 characters) with benefits, action words and key features
3. Meta keywords: 8-12 highly relevant, search-optimized keywords (comma-separated)

Use "{company}" ONLY in the meta title (after |) and the meta description.
Do NOT include the company name in keywords.

Answer with JSON only, using the keys: metaTitle, metaDescription, metaKeywords"""

_json_object = re.compile(r"\{[\s\S]*\}")
_loose_field = {
    "meta_title": re.compile(r"title[\"\s]*:\s*[\"']([^\"']+)[\"']", re.I),
    "meta_description": re.compile(r"description[\"\s]*:\s*[\"']([^\"']+)[\"']", re.I),
    "meta_keywords": re.compile(r"keywords[\"\s]*:\s*[\"']([^\"']+)[\"']", re.I),
}


def with_company_suffix(title: str, company: str) -> str:
    if f"| {company}" in title:
        return title
    return re.sub(r"\s*\|.*$", "", title).strip() + f" | {company}"


def premium_template(category: str, subcategory: Optional[str], company: str) -> dict[str, str]:
    category = category.lower()
    if subcategory:
        sub = subcategory.lower()
        return {
            "meta_title": f"Premium {sub} {category} | {company}",
            "meta_description": (
                f"Discover top-quality {sub} in {category}. Premium brands, competitive prices, "
                "fast shipping & expert support. Shop now!"
            ),
            "meta_keywords": ", ".join([
                sub, category, f"premium {sub}", f"buy {sub}", f"{sub} online", f"best {sub}",
                f"{category} products", f"quality {sub}", f"{sub} store", f"{sub} deals", f"top {sub}",
            ]),
        }
    return {
        "meta_title": f"Premium {category} Collection | {company}",
        "meta_description": (
            f"Shop premium {category} products online. Top brands, unbeatable prices, "
            "fast delivery & expert customer service. Browse now!"
        ),
        "meta_keywords": ", ".join([
            category, f"premium {category}", f"buy {category}", f"{category} online", f"best {category}",
            f"{category} products", f"quality {category}", f"{category} store", f"{category} deals",
            f"top {category}", f"{category} collection",
        ]),
    }


def parse_seo_answer(text: str, company: str) -> Optional[dict[str, str]]:
    """Pull the three meta fields out of a model answer, or None if it has none."""
    if not text:
        return None
    match = _json_object.search(text)
    data: dict[str, Any] = {}
    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            data = {}
    if data:
        result = {
            "meta_title": data.get("metaTitle") or data.get("meta_title") or "",
            "meta_description": data.get("metaDescription") or data.get("meta_description") or "",
            "meta_keywords": data.get("metaKeywords") or data.get("meta_keywords") or "",
        }
    else:
        result = {}
        for key, pattern in _loose_field.items():
            found = pattern.search(text)
            if found:
                result[key] = found.group(1)
    if not result.get("meta_title"):
        return None
    if isinstance(result.get("meta_keywords"), list):
        result["meta_keywords"] = ", ".join(result["meta_keywords"])
    result["meta_title"] = with_company_suffix(result["meta_title"], company)
    result.setdefault("meta_description", "")
    result.setdefault("meta_keywords", "")
    return result


async def detect_company_name(db: AsyncIOMotorDatabase) -> str:
    company = await db["company_settings"].find_one({}, {"company_name": 1})
    if company and company.get("company_name", "").strip() not in PLACEHOLDER_COMPANIES:
        return company["company_name"].strip()
    for collection in ("category", "subcategory"):
        doc = await db[collection].find_one(
            {"meta_title": {"$regex": r"\|"}}, sort=[("updated_at", -1)]
        )
        if doc:
            name = doc["meta_title"].split("|")[-1].strip()
            if name not in PLACEHOLDER_COMPANIES:
                return name
    return FALLBACK_COMPANY


class SeoGenerator:
    def __init__(self, llm: Optional[BaseChatModel] = None):
        self._llm = llm

    @property
    def llm(self) -> Optional[BaseChatModel]:
        if self._llm is None and settings.OPENAI_API_KEY:
            self._llm = ChatOpenAI(
                model=settings.SEO_MODEL, temperature=0.7, max_tokens=500, api_key=settings.OPENAI_API_KEY
            )
        return self._llm

    async def generate(self, category: str, subcategory: Optional[str], company: str) -> dict[str, str]:
        subject = (
            f'subcategory "{subcategory}" under category "{category}"' if subcategory else f'category "{category}"'
        )
        llm = self.llm
        if llm is not None:
            try:
                answer = await llm.ainvoke(PROMPT.format(subject=subject, company=company))
                parsed = parse_seo_answer(str(answer.content), company)
                if parsed:
                    return parsed
                logger.warning("Unparseable SEO answer for %s: %r", subject, answer.content)
            except Exception:
                logger.exception("SEO generation failed for %s", subject)
        return premium_template(category, subcategory, company)


_generator: Optional[SeoGenerator] = None


def get_seo_generator() -> SeoGenerator:
    global _generator
    if _generator is None:
        _generator = SeoGenerator()
    return _generator
