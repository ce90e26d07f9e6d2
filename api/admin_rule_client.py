from models.search import FilterSet, SourceId

from .base_client import BaseLegalClient


class AdminRuleClient(BaseLegalClient):
    """Administrative rules (행정규칙): ministry notices, directives and guidelines."""

    source_id = SourceId.ADMIN_RULE
    envelope_keys = ("AdmRulSearch", "AdmrulSearch")
    list_key = "admrul"
    detail_envelope_keys = ("AdmRulService", "AdmrulService")
    detail_info_key = "행정규칙기본정보"
    content_keys = ("조문내용", "부칙")

    field_map = {
        "id": ("행정규칙일련번호", "행정규칙ID"),
        "title": ("행정규칙명",),
        "department": ("소관부처명", "소관부처"),
        "effective_date": ("시행일자", "발령일자"),
        "detail_url": ("행정규칙상세링크",),
    }
    metadata_map = {
        "rule_id": ("행정규칙ID",),
        "law_type": ("행정규칙종류",),
        "issue_date": ("발령일자",),
        "issue_no": ("발령번호",),
        "status": ("현행연혁구분", "현행연혁"),
    }

    def filter_params(self, filters: FilterSet) -> dict[str, str]:
        params = {}
        if filters.departments:
            params["org"] = ",".join(filters.departments)
        if filters.law_types:
            params["knd"] = ",".join(filters.law_types)
        if filters.date_from:
            params["fromDate"] = filters.date_from
        if filters.date_to:
            params["toDate"] = filters.date_to
        return params
