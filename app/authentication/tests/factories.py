"""
Factory Boy factories for authentication models.

Usage:
    from authentication.tests.factories import AdminUserFactory, UserFactory

    buyer = UserFactory()
    seller = UserFactory(full_name="Ada Okafor")
    admin = AdminUserFactory()
"""

import factory

from authentication.models import User


class UserFactory(factory.django.DjangoModelFactory):
    """
    Factory for User model.

    Creates active, verified marketplace users. Uses the manager so the
    password is hashed the same way as real sign-ups.
    """

    class Meta:
        model = User
        skip_postgeneration_save = True

    email = factory.Sequence(lambda n: f"user{n}@example.com")
    full_name = factory.Sequence(lambda n: f"Marketplace User {n}")
    phone = factory.Sequence(lambda n: f"+23480{n:08d}")
    email_verified = True
    is_active = True
    is_staff = False

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        """Override create to use UserManager.create_user()."""
        password = kwargs.pop("password", "TestPass123!")
        return model_class.objects.create_user(
            email=kwargs.pop("email"), password=password, **kwargs
        )


class AdminUserFactory(UserFactory):
    """Staff user allowed to settle escrow orders."""

    email = factory.Sequence(lambda n: f"ops{n}@example.com")
    is_staff = True
