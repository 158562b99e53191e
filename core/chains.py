#!/usr/bin/env python3
"""
Migration Chains
================

The table chains the migrator knows how to copy.

Invitations is scoped by a seeded set of resource ids: the invitations of
those resources yield the invited emails, the emails yield the invitation
tokens, and each lookup table is copied filtered by the identifiers the
previous stage found.

Principals is scoped by tenant alias. The principal ids it finds filter the
email lookup table, and are also split into group ids and user ids for
downstream copies.
"""

from typing import Dict, List

from core.errors import ChainConfigurationError
from core.table_spec import ChainSpec, KeyExtractor, TableSpec, column, column_with_prefix

# Key set names, prefixed with their chain so concurrent chains never collide
INVITATION_RESOURCE_IDS = "invitations.resource_ids"
INVITATION_EMAILS = "invitations.emails"
INVITATION_TOKENS = "invitations.tokens"

PRINCIPAL_IDS = "principals.ids"
PRINCIPAL_GROUP_IDS = "principals.group_ids"
PRINCIPAL_USER_IDS = "principals.user_ids"

TENANT_ALIAS = "tenant_alias"

INVITATIONS = ChainSpec(
    name="invitations",
    inputs=(INVITATION_RESOURCE_IDS,),
    stages=(
        TableSpec(
            table="AuthzInvitations",
            columns=("resourceId", "email", "inviterUserId", "role"),
            filter_column="resourceId",
            filter_key_set=INVITATION_RESOURCE_IDS,
            extractors=(KeyExtractor(INVITATION_EMAILS, column("email")),),
        ),
        TableSpec(
            table="AuthzInvitationsResourceIdByEmail",
            columns=("email", "resourceId"),
            filter_column="email",
            filter_key_set=INVITATION_EMAILS,
        ),
        TableSpec(
            table="AuthzInvitationsTokenByEmail",
            columns=("email", "token"),
            filter_column="email",
            filter_key_set=INVITATION_EMAILS,
            extractors=(KeyExtractor(INVITATION_TOKENS, column("token")),),
        ),
        TableSpec(
            table="AuthzInvitationsEmailByToken",
            columns=("token", "email"),
            filter_column="token",
            filter_key_set=INVITATION_TOKENS,
        ),
    ),
)

PRINCIPAL_COLUMNS = (
    "principalId",
    "acceptedTC",
    "admin:global",
    "admin:tenant",
    "created",
    "createdBy",
    "deleted",
    "description",
    "displayName",
    "email",
    "emailPreference",
    "joinable",
    "largePictureUri",
    "lastModified",
    "locale",
    "mediumPictureUri",
    "notificationsLastRead",
    "notificationsUnread",
    "publicAlias",
    "smallPictureUri",
    "tenantAlias",
    "visibility",
)

PRINCIPALS = ChainSpec(
    name="principals",
    params=(TENANT_ALIAS,),
    stages=(
        TableSpec(
            table="Principals",
            columns=PRINCIPAL_COLUMNS,
            filter_column="tenantAlias",
            filter_param=TENANT_ALIAS,
            extractors=(
                KeyExtractor(PRINCIPAL_IDS, column("principalId")),
                KeyExtractor(PRINCIPAL_GROUP_IDS, column_with_prefix("principalId", "g")),
                KeyExtractor(PRINCIPAL_USER_IDS, column_with_prefix("principalId", "u")),
            ),
        ),
        TableSpec(
            table="PrincipalsByEmail",
            columns=("email", "principalId"),
            filter_column="principalId",
            filter_key_set=PRINCIPAL_IDS,
            allow_filtering=True,
        ),
    ),
)

CHAINS: Dict[str, ChainSpec] = {
    INVITATIONS.name: INVITATIONS,
    PRINCIPALS.name: PRINCIPALS,
}


def get_chain(name: str) -> ChainSpec:
    """Look up a registered chain by name"""
    try:
        return CHAINS[name]
    except KeyError:
        raise ChainConfigurationError(
            f"Unknown chain '{name}'. Available chains: {', '.join(sorted(CHAINS))}",
            {'chain': name})


def get_chains(names: List[str]) -> List[ChainSpec]:
    return [get_chain(name) for name in names]
