from .applications import add_box_app, add_salesforce_saml_app
from .governance import (
    create_access_certification_campaign,
    create_entitlement_bundles,
    setup_sod_demo,
)
from .sequence import run_all
from .security import (
    configure_entity_risk_policy,
    create_device_assurance_policies,
    enable_fido2,
    run_policy_simulation,
)
from .users import (
    add_new_administrator,
    create_standard_department_groups,
    create_super_admins_group,
    populate_demo_users,
    setup_realms,
)

__all__ = [
    "add_box_app",
    "add_new_administrator",
    "add_salesforce_saml_app",
    "configure_entity_risk_policy",
    "create_access_certification_campaign",
    "create_device_assurance_policies",
    "create_entitlement_bundles",
    "create_standard_department_groups",
    "create_super_admins_group",
    "enable_fido2",
    "populate_demo_users",
    "run_all",
    "run_policy_simulation",
    "setup_realms",
    "setup_sod_demo",
]
