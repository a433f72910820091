import logging
from typing import Callable

from ..domain.errors import IdentityConflictError
from ..domain.repositories import UserRepository
from ..models import Gender, User, UserRole
from ..utils.passwords import provision_credential

logger = logging.getLogger(__name__)


async def resolve_customer(
    user_repo: UserRepository,
    *,
    email: str,
    phone: str,
    name: str,
    credential_factory: Callable[[], str] = provision_credential,
) -> User:
    """
    Find the customer matching email OR mobile, creating one when none exists.
    An existing customer is returned as stored; booking contact details do not
    overwrite it.
    """
    user = await user_repo.find_by_email_or_mobile(email, phone)
    if user is not None:
        return user

    try:
        return await user_repo.create(
            name=name,
            email=email,
            mobile=phone,
            password_hash=credential_factory(),
            gender=Gender.OTHER,
            role=UserRole.USER,
        )
    except IdentityConflictError:
        logger.info("customer for %s created concurrently, resolving again", email)
        user = await user_repo.find_by_email_or_mobile(email, phone, locking=True)
        if user is None:
            raise
        return user
