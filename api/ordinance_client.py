from models.search import FilterSet, SourceId

from .base_client import BaseLegalClient


class OrdinanceClient(BaseLegalClient):
    """Local ordinances (자치법규) issued by provinces, cities and districts."""

    source_id = SourceId.ORDINANCE
    # Older deployments wrapped ordinance results in LawSearch as well
    envelope_keys = ("OrdinSearch", "LawSearch")
    list_key = "law"
    detail_envelope_keys = ("LawService", "법령")
    detail_info_key = "자치법규기본정보"
    detail_id_param = "MST"
    content_keys = ("조문", "부칙")

    field_map = {
        "id": ("자치법규일련번호", "자치법규ID"),
        "title": ("자치법규명",),
        "department": ("지자체기관명", "자치단체명", "소관부서"),
        "effective_date": ("시행일자",),
        "detail_url": ("자치법규상세링크",),
    }
    metadata_map = {
        "ordinance_id": ("자치법규ID",),
        "law_type": ("자치법규종류",),
        "promulgation_date": ("공포일자",),
        "revision_type": ("제개정구분명",),
        "field": ("자치법규분야명",),
    }

    def filter_params(self, filters: FilterSet) -> dict[str, str]:
        params = {}
        if filters.region:
            params["org"] = filters.region
        if filters.law_types:
            params["knd"] = ",".join(filters.law_types)
        if filters.date_from or filters.date_to:
            params["efYd"] = f"{filters.date_from or '00000101'}~{filters.date_to or '99991231'}"
        return params
