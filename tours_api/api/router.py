from fastapi import APIRouter, Depends
from tours_api.api import auth, tours, users
from tours_api.services.rate_limit import limit_api_requests

router = APIRouter(dependencies=[Depends(limit_api_requests)])
router.include_router(tours.router, prefix="/tours", tags=["Tours"])
router.include_router(auth.router, prefix="/users", tags=["Auth"])
router.include_router(users.router, prefix="/users", tags=["Users"])
