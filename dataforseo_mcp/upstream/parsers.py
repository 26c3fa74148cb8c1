"""Response parsers that strip DataForSEO items down to the compact wire shape.

Each parser maps one raw API item to a small dict with short keys
(kw, vol, cpc, comp, intent, kd, monthly, pos, ...). Parsers are pure and
return None for items that should be dropped.
"""

import math
from typing import Any, Callable, Dict, Optional

Item = Dict[str, Any]
ItemParser = Callable[[Item, Dict[str, Any]], Optional[Item]]


def format_monthly(monthly_searches: Any) -> Optional[list[int]]:
    """Convert monthly_searches to a newest-first list of volumes.

    Accepts a {"YYYY-MM": volume} map or a [{year, month, search_volume}] list.
    """
    if not monthly_searches:
        return None

    if isinstance(monthly_searches, dict):
        return [monthly_searches[key] for key in sorted(monthly_searches, reverse=True)]

    if not isinstance(monthly_searches, list):
        return None

    entries = [
        entry
        for entry in monthly_searches
        if isinstance(entry, dict) and entry.get("year") is not None and entry.get("month") is not None
    ]
    entries.sort(key=lambda entry: (entry["year"], entry["month"]), reverse=True)
    series = [entry.get("search_volume") or 0 for entry in entries]
    return series or None


def parse_search_volume(item: Item, context: Dict[str, Any]) -> Optional[Item]:
    """Parser for kw_data_google_ads_search_volume."""
    if not item:
        return None

    if not item.get("search_volume"):
        return {"kw": item.get("keyword"), "vol": 0}

    result: Item = {"kw": item.get("keyword"), "vol": item["search_volume"]}
    if item.get("cpc") is not None:
        result["cpc"] = item["cpc"]
    # Google Ads uses "competition" (HIGH/MEDIUM/LOW), not competition_level
    if item.get("competition"):
        result["comp"] = item["competition"]

    monthly = format_monthly(item.get("monthly_searches"))
    if monthly:
        result["monthly"] = monthly
    return result


def parse_keyword_suggestions(item: Item, context: Dict[str, Any]) -> Optional[Item]:
    """Parser for keyword suggestions, keyword ideas and related keywords."""
    if not item:
        return None

    # related_keywords nests the keyword block under keyword_data
    data = item.get("keyword_data") or item
    info = data.get("keyword_info") or {}
    properties = data.get("keyword_properties") or {}
    intent_info = data.get("search_intent_info") or {}

    result: Item = {"kw": data.get("keyword"), "vol": info.get("search_volume") or 0}

    if result["vol"] == 0 and not info.get("cpc") and not info.get("competition_level"):
        return result

    if info.get("cpc") is not None:
        result["cpc"] = info["cpc"]
    if info.get("competition_level"):
        result["comp"] = info["competition_level"]
    if intent_info.get("main_intent"):
        result["intent"] = intent_info["main_intent"]

    monthly = format_monthly(info.get("monthly_searches"))
    if monthly:
        result["monthly"] = monthly

    if properties.get("keyword_difficulty") is not None:
        result["kd"] = properties["keyword_difficulty"]
    return result


def parse_ranked_keywords(item: Item, context: Dict[str, Any]) -> Optional[Item]:
    """Parser for dataforseo_labs_google_ranked_keywords."""
    if not item:
        return None

    data = item.get("keyword_data") or {}
    info = data.get("keyword_info") or {}
    intent_info = data.get("search_intent_info") or {}
    serp_item = (item.get("ranked_serp_element") or {}).get("serp_item") or {}

    result: Item = {
        "kw": data.get("keyword") or item.get("keyword"),
        "vol": info.get("search_volume") or 0,
    }
    if info.get("cpc") is not None:
        result["cpc"] = info["cpc"]
    if info.get("competition_level"):
        result["comp"] = info["competition_level"]
    if intent_info.get("main_intent"):
        result["intent"] = intent_info["main_intent"]

    if serp_item.get("rank_group") is not None:
        result["pos"] = serp_item["rank_group"]
    if serp_item.get("type"):
        result["type"] = serp_item["type"]
    if serp_item.get("url"):
        result["url"] = serp_item["url"]
    if serp_item.get("etv") is not None:
        result["etv"] = serp_item["etv"]

    monthly = format_monthly(info.get("monthly_searches"))
    if monthly:
        result["monthly"] = monthly
    return result


_ORGANIC_FIELDS = ("count", "etv", "pos_1", "pos_2_3", "pos_4_10", "is_up", "is_down", "is_new")


def parse_domain_rank_overview(item: Item, context: Dict[str, Any]) -> Optional[Item]:
    """Parser for dataforseo_labs_google_domain_rank_overview.

    Falls back to the request target when the item has none.
    """
    if not item:
        return None

    result: Item = {}
    target = item.get("target") or context.get("target")
    if target:
        result["target"] = target

    metrics = item.get("metrics") or {}
    organic = metrics.get("organic")
    if organic:
        result["organic"] = {
            name: organic[name] for name in _ORGANIC_FIELDS if organic.get(name) is not None
        }

    paid = metrics.get("paid") or {}
    result["paid"] = {"count": paid.get("count") or 0, "etv": paid.get("etv") or 0}
    return result


def parse_serp_organic(item: Item, context: Dict[str, Any]) -> Optional[Item]:
    """Parser for serp_organic_live_advanced."""
    if not item:
        return None

    result: Item = {}
    if item.get("rank_group") is not None:
        result["pos"] = item["rank_group"]
    for source, target in (("type", "type"), ("url", "url"), ("title", "title"),
                           ("description", "desc"), ("domain", "domain")):
        if item.get(source):
            result[target] = item[source]
    return result


_BACKLINK_FIELDS = (
    ("backlinks", "backlinks"),
    ("referring_domains", "ref_domains"),
    ("referring_domains_nofollow", "ref_domains_nofollow"),
    ("rank", "rank"),
    ("broken_backlinks", "broken_backlinks"),
    ("referring_ips", "referring_ips"),
)


def parse_backlinks_summary(item: Item, context: Dict[str, Any]) -> Optional[Item]:
    """Parser for backlinks_summary."""
    if not item:
        return None

    result: Item = {"target": item.get("target") or context.get("target")}
    for source, target in _BACKLINK_FIELDS:
        if item.get(source) is not None:
            result[target] = item[source]
    return result


_COMPETITOR_ORGANIC_FIELDS = ("count", "etv", "pos_1", "pos_2_3", "pos_4_10")


def parse_competitors_domain(item: Item, context: Dict[str, Any]) -> Optional[Item]:
    """Parser for dataforseo_labs_google_competitors_domain."""
    if not item:
        return None

    result: Item = {"domain": item.get("domain")}
    if item.get("avg_position") is not None:
        result["avg_pos"] = item["avg_position"]
    if item.get("intersections") is not None:
        result["intersections"] = item["intersections"]

    organic = (item.get("metrics") or {}).get("organic")
    if organic:
        result["metrics"] = {
            "organic": {
                name: organic[name]
                for name in _COMPETITOR_ORGANIC_FIELDS
                if organic.get(name) is not None
            }
        }
    return result


def parse_backlinks_backlinks(item: Item, context: Dict[str, Any]) -> Optional[Item]:
    """Parser for backlinks_backlinks."""
    if not item:
        return None

    result: Item = {}
    for name in ("url_from", "url_to", "first_seen"):
        if item.get(name):
            result[name] = item[name]
    for name in ("anchor", "dofollow", "rank", "domain_from_rank", "is_lost"):
        if item.get(name) is not None:
            result[name] = item[name]
    return result


_ON_PAGE_NOISE = (
    "status_code",
    "size",
    "encoded_size",
    "total_dom_size",
    "custom_js_response",
    "resource_errors",
    "broken_resources",
)


def parse_on_page(item: Item, context: Dict[str, Any]) -> Optional[Item]:
    """Parser for on_page_instant_pages and on_page_content_parsing.

    Page content is the payload, so only transport noise is removed.
    """
    if not item:
        return None
    return {key: value for key, value in item.items() if key not in _ON_PAGE_NOISE}


_LIGHTHOUSE_CATEGORIES = (
    ("performance", "performance"),
    ("accessibility", "accessibility"),
    ("best-practices", "best_practices"),
    ("seo", "seo"),
)


def _percent(score: Any) -> int:
    # half-up, not banker's rounding
    return int(math.floor(score * 100 + 0.5))


def parse_lighthouse(item: Item, context: Dict[str, Any]) -> Optional[Item]:
    """Parser for on_page_lighthouse.

    Keeps category scores as percentages and the audits that did not pass.
    Audits scored 1 or null count as passed, 0 as failed, anything else as
    a warning.
    """
    if not item:
        return None

    result: Item = {}
    if item.get("url"):
        result["url"] = item["url"]

    categories = item.get("categories")
    if categories:
        scores: Item = {}
        for source, target in _LIGHTHOUSE_CATEGORIES:
            score = (categories.get(source) or {}).get("score")
            if score is not None:
                scores[target] = _percent(score)
        result["scores"] = scores

    audits = item.get("audits")
    if isinstance(audits, dict):
        passed = failed = warnings = 0
        failed_audits = []
        for audit_id, audit in audits.items():
            if not isinstance(audit, dict) or "score" not in audit:
                continue
            score = audit["score"]
            if score is None or score == 1:
                passed += 1
                continue
            if score == 0:
                failed += 1
            else:
                warnings += 1
            failed_audits.append({
                "id": audit_id,
                "title": audit.get("title"),
                "description": audit.get("description"),
                "score": score,
                "displayValue": audit.get("displayValue"),
            })

        result["audits_summary"] = {"passed": passed, "failed": failed, "warnings": warnings}
        if failed_audits:
            result["failed_audits"] = failed_audits
    return result


PARSERS: Dict[str, ItemParser] = {
    "kw_data_google_ads_search_volume": parse_search_volume,
    "dataforseo_labs_google_keyword_suggestions": parse_keyword_suggestions,
    "dataforseo_labs_google_keyword_ideas": parse_keyword_suggestions,
    "dataforseo_labs_google_related_keywords": parse_keyword_suggestions,
    "dataforseo_labs_google_ranked_keywords": parse_ranked_keywords,
    "dataforseo_labs_google_competitors_domain": parse_competitors_domain,
    "dataforseo_labs_google_domain_rank_overview": parse_domain_rank_overview,
    "backlinks_summary": parse_backlinks_summary,
    "backlinks_backlinks": parse_backlinks_backlinks,
    "serp_organic_live_advanced": parse_serp_organic,
    "on_page_instant_pages": parse_on_page,
    "on_page_content_parsing": parse_on_page,
    "on_page_lighthouse": parse_lighthouse,
}


def parse_response(
    tool_name: str,
    items: list[Item],
    context: Optional[Dict[str, Any]] = None,
) -> list[Item]:
    """Apply the tool's parser to every item and drop the ones it rejects.

    Tools without a registered parser get their items back unchanged.
    """
    parser = PARSERS.get(tool_name)
    if parser is None:
        return list(items)
    context = context or {}
    parsed = (parser(item, context) for item in items)
    return [item for item in parsed if item is not None]
