from fastapi import APIRouter, Depends, Header, HTTPException, Response

from stampwallet.api.deps import get_stamp_generator
from stampwallet.repositories.card_design import CardDesignRepository
from stampwallet.repositories.wallet_pass import WalletPassRepository
from stampwallet.services.layout import HERO
from stampwallet.services.pass_generator import build_stamp_visual, etag_matches
from stampwallet.services.render_cache import render_with_cache
from stampwallet.services.strip_generator import StampImageGenerator

router = APIRouter()


@router.get("/{pass_id}/hero.png")
def get_hero_image(
    pass_id: str,
    if_none_match: str | None = Header(None, alias="If-None-Match"),
    generator: StampImageGenerator = Depends(get_stamp_generator),
):
    """Google Wallet hero image showing a pass's stamp progress."""
    wallet_pass = WalletPassRepository.get_by_id(pass_id)
    if not wallet_pass or wallet_pass["status"] == "deleted":
        raise HTTPException(status_code=404, detail="Pass not found")

    design = CardDesignRepository.get_for_offer(wallet_pass["offer_id"])
    result = render_with_cache(generator, build_stamp_visual(wallet_pass, design, HERO.name))

    etag = f'"{result.content_tag}"'
    if etag_matches(if_none_match, etag):
        return Response(status_code=304, headers={"ETag": etag})

    return Response(
        content=result.image,
        media_type="image/png",
        headers={"ETag": etag, "Cache-Control": "no-cache"},
    )
