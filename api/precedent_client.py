from models.search import FilterSet, SourceId

from .base_client import BaseLegalClient


class PrecedentClient(BaseLegalClient):
    """
    Court precedents (판례).

    The effective date of a precedent is its decision date (선고일자) and the
    department is the court.
    """

    source_id = SourceId.PRECEDENT
    envelope_keys = ("PrecSearch",)
    list_key = "prec"
    detail_envelope_keys = ("PrecService",)
    detail_info_key = "판례정보"
    content_keys = ("판시사항", "판결요지", "참조조문", "참조판례", "판례내용")

    field_map = {
        "id": ("판례일련번호",),
        "title": ("사건명",),
        "department": ("법원명",),
        "effective_date": ("선고일자",),
        "detail_url": ("판례상세링크",),
    }
    metadata_map = {
        "case_number": ("사건번호",),
        "case_type": ("사건종류명",),
        "judgment_type": ("판결유형",),
        "decision": ("선고",),
    }

    def filter_params(self, filters: FilterSet) -> dict[str, str]:
        params = {}
        if filters.court:
            params["court"] = filters.court
        if filters.case_type:
            params["caseType"] = filters.case_type
        if filters.date_from:
            params["fromDate"] = filters.date_from
        if filters.date_to:
            params["toDate"] = filters.date_to
        return params
