from models.search import FilterSet, SourceId

from .base_client import BaseLegalClient


class InterpretationClient(BaseLegalClient):
    """Official statutory interpretations (법령해석례) answered by government bodies."""

    source_id = SourceId.INTERPRETATION
    envelope_keys = ("Expc", "ExpcSearch")
    list_key = "expc"
    detail_envelope_keys = ("ExpcService",)
    detail_info_key = None
    content_keys = ("질의요지", "회답", "이유")

    field_map = {
        "id": ("법령해석례일련번호", "해석례일련번호", "해석례ID"),
        "title": ("안건명", "해석례명"),
        "department": ("회신기관명", "소관기관", "해석기관명"),
        "effective_date": ("회신일자", "해석일자"),
        "detail_url": ("법령해석례상세링크",),
    }
    metadata_map = {
        "case_number": ("안건번호",),
        "inquiry_agency": ("질의기관명",),
        "category": ("사안구분",),
        "status": ("현행여부",),
    }

    def filter_params(self, filters: FilterSet) -> dict[str, str]:
        params = {}
        if filters.departments:
            params["org"] = ",".join(filters.departments)
        if filters.date_from:
            params["fromDate"] = filters.date_from
        if filters.date_to:
            params["toDate"] = filters.date_to
        return params
