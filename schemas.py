"""
API request / response schemas（pydantic）
"""
from datetime import date as date_type, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============ 管理員 / 組織 ============

class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    created_at: datetime


class AdminInvite(BaseModel):
    email: str
    organization_id: Optional[UUID] = None
    is_super: bool = False


class AdminUpdate(BaseModel):
    email: Optional[str] = None
    organization_id: Optional[UUID] = None
    is_super: Optional[bool] = None


class AdminResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    is_super: bool
    organization_id: UUID
    # 尚未登入綁定的邀請為 False
    linked: bool = False


class MeResponse(BaseModel):
    admin: AdminResponse
    scope: str
    scope_model: str


class EventAdminAssign(BaseModel):
    email: str


# ============ 活動 / 啤酒 ============

class EventCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    date: Optional[date_type] = None
    max_points: Optional[int] = Field(None, ge=1)
    blind_tasting: bool = False
    organization_id: Optional[UUID] = None


class EventUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    date: Optional[date_type] = None
    max_points: Optional[int] = Field(None, ge=1)
    blind_tasting: Optional[bool] = None


class BeerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    brewer: Optional[str] = Field(None, max_length=200)
    style: Optional[str] = Field(None, max_length=200)


class BeerResponse(BaseModel):
    id: UUID
    name: str
    brewer: str
    style: Optional[str] = None
    brewer_code: Optional[str] = None


class EventSummary(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    date: Optional[date_type] = None
    max_points: int
    blind_tasting: bool
    reveal_stage: int
    event_code: Optional[str] = None


class RankedBeerResponse(BaseModel):
    beer_id: UUID
    name: str
    brewer: str
    style: Optional[str] = None
    total_points: int
    voter_count: int
    rank: int
    tied: bool


class StatsResponse(BaseModel):
    beer_count: int
    voter_count: int
    total_points_cast: int
    registered_voters: int


class EventDashboard(EventSummary):
    manage_code: Optional[str] = None
    manage_token: UUID
    beers: List[BeerResponse]
    ranking: List[RankedBeerResponse]
    stats: StatsResponse


class VoterBatchRequest(BaseModel):
    count: int = Field(..., ge=1)


class VoterCodesResponse(BaseModel):
    event_code: Optional[str] = None
    voter_codes: List[str]


class RegenerateResponse(BaseModel):
    created: int


class RevealResponse(BaseModel):
    event_id: UUID
    reveal_stage: int
    voting_open: bool


# ============ 管理連結（不需登入） ============

class ManageResponse(BaseModel):
    event_name: str
    date: Optional[date_type] = None
    beers: List[BeerResponse]


# ============ 投票 ============

class VoteSubmit(BaseModel):
    # 範圍（0..max_points）由 VotingManager.cast_vote 檢查
    points: int


class FeedbackSubmit(BaseModel):
    notes: Optional[str] = None
    share_with_brewer: bool = False


class FeedbackResponse(BaseModel):
    beer_id: UUID
    notes: Optional[str] = None
    share_with_brewer: bool


class BallotBeer(BaseModel):
    id: UUID
    # 盲測時只顯示編號
    label: str
    name: Optional[str] = None
    brewer: Optional[str] = None
    style: Optional[str] = None
    points: int = 0
    feedback: Optional[FeedbackResponse] = None


class BallotResponse(BaseModel):
    event_name: str
    max_points: int
    points_used: int
    points_remaining: int
    voting_open: bool
    blind_tasting: bool
    beers: List[BallotBeer]


# ============ 公開結果 / 釀酒師 ============

class PublicResultsResponse(BaseModel):
    event_name: str
    reveal_stage: int
    results_visible: bool
    ranking: Optional[List[RankedBeerResponse]] = None
    stats: StatsResponse


class BrewerFeedback(BaseModel):
    notes: str
    created_at: datetime


class BrewerResponse(BaseModel):
    beer_name: str
    brewer: str
    style: Optional[str] = None
    event_name: str
    feedback: List[BrewerFeedback]
