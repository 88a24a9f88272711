from fastapi import APIRouter, Depends, HTTPException

from src.data_models.dao_schemas import (
    CreateProposalRequest,
    DelegateRequest,
    HelpRequest,
    HelpResponse,
    JoinRequest,
    MemberBalance,
    MemberVoteHistory,
    MentionRequest,
    ProposalList,
    VoteRequest,
)
from src.relay.errors import ChainReadError, ValidationError, sanitize_error
from src.routers.deps import _bad_request, _error_detail, get_dao_service, require_api_key
from src.services.dao_service import NOT_A_MEMBER_MESSAGE
from src.services.wallet_vault import WalletNotFoundError

# Auth is checked before the service dependency is resolved
router = APIRouter(prefix="/governance", tags=["governance"], dependencies=[Depends(require_api_key)])


@router.post("/join")
async def join_dao(req: JoinRequest, service=Depends(get_dao_service)):
    return await service.join_dao(req.user_id, req.pin)


@router.post("/votes")
async def cast_vote(req: VoteRequest, service=Depends(get_dao_service)):
    """Relay a member's vote. Failures come back in the body, never as a raw chain error."""
    return await service.cast_vote(req.user_id, req.pin, req.proposal_id, req.vote_type)


@router.post("/delegate")
async def delegate(req: DelegateRequest, service=Depends(get_dao_service)):
    return await service.delegate(req.user_id, req.pin, req.delegatee)


@router.post("/proposals")
async def create_proposal(req: CreateProposalRequest, service=Depends(get_dao_service)):
    return await service.create_proposal(req.user_id, req.title, req.description)


@router.get("/proposals")
async def list_active_proposals(service=Depends(get_dao_service)):
    return ProposalList(proposals=await service.list_active_proposals())


@router.get("/proposals/{proposal_id}")
async def get_proposal(proposal_id: str, service=Depends(get_dao_service)):
    try:
        return await service.get_proposal_info(proposal_id)
    except ValidationError as e:
        raise _bad_request(str(e))


@router.get("/proposals/{proposal_id}/state")
async def get_proposal_state(proposal_id: str, service=Depends(get_dao_service)):
    try:
        return await service.get_proposal_state(proposal_id)
    except ValidationError as e:
        raise _bad_request(str(e))


@router.post("/proposals/{proposal_id}/finalize")
async def finalize_proposal(proposal_id: str, service=Depends(get_dao_service)):
    return await service.finalize_proposal(proposal_id)


@router.post("/help")
async def get_help(req: HelpRequest, service=Depends(get_dao_service)):
    return HelpResponse(text=await service.help(req.topic))


@router.post("/mentions")
async def answer_group_mention(req: MentionRequest, service=Depends(get_dao_service)):
    return HelpResponse(text=await service.answer_group_mention(req.message, req.context))


@router.get("/members/{user_id}/votes", response_model=MemberVoteHistory)
async def get_member_votes(user_id: str, service=Depends(get_dao_service)):
    return await service.get_member_votes(user_id)


@router.get("/members/{user_id}/balance", response_model=MemberBalance)
async def get_member_balance(user_id: str, service=Depends(get_dao_service)):
    try:
        return await service.get_balance(user_id)
    except WalletNotFoundError:
        raise HTTPException(status_code=404, detail=_error_detail(NOT_A_MEMBER_MESSAGE, "not_found_error"))
    except ChainReadError as e:
        raise HTTPException(status_code=502, detail=_error_detail(sanitize_error(e), "chain_error"))
