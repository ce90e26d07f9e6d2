from typing import Any

from models.search import FilterSet, SourceId

from . import payloads
from .base_client import BaseLegalClient


class StatuteClient(BaseLegalClient):
    """
    National Law Information Center (국가법령정보센터) statute search.

    Search body: {"LawSearch": {"totalCnt": "...", "law": [...] | {...}}}
    Detail body: {"법령": {"기본정보": {...}, "조문": {"조문단위": [...]}}}
    """

    source_id = SourceId.STATUTE
    envelope_keys = ("LawSearch",)
    list_key = "law"
    detail_envelope_keys = ("법령",)
    detail_info_key = "기본정보"
    detail_id_param = "MST"

    field_map = {
        "id": ("법령일련번호", "법령ID"),
        "title": ("법령명한글", "법령명_한글", "법령명"),
        "department": ("소관부처명",),
        "effective_date": ("시행일자",),
        "detail_url": ("법령상세링크",),
    }
    metadata_map = {
        "law_id": ("법령ID",),
        "law_type": ("법령구분명", "법종구분명"),
        "promulgation_date": ("공포일자",),
        "promulgation_no": ("공포번호",),
        "revision_type": ("제개정구분명",),
        "status": ("현행연혁코드",),
    }

    def filter_params(self, filters: FilterSet) -> dict[str, str]:
        params = {}
        if filters.law_types:
            params["knd"] = ",".join(filters.law_types)
        if filters.departments:
            params["org"] = ",".join(filters.departments)
        if filters.date_from or filters.date_to:
            params["efYd"] = f"{filters.date_from or '00000101'}~{filters.date_to or '99991231'}"
        return params

    def extract_content(self, body: dict[str, Any], info: dict[str, Any]) -> str:
        articles = body.get("조문")
        if isinstance(articles, dict):
            articles = articles.get("조문단위")
        lines = []
        for article in payloads.as_list(articles):
            content = payloads.text(article.get("조문내용"))
            if content:
                lines.append(content)
        return "\n".join(lines)
