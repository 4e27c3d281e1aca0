from pydantic import BaseModel


class CandidateSearch(BaseModel):
    role: str
    lat: float
    lng: float
    radius_km: float


class CandidateMatch(BaseModel):
    vendor_id: str
    name: str
    role: str
    distance_km: float
    rating: float
    location_lat: float
    location_lng: float
    profile_image_url: str | None = None
