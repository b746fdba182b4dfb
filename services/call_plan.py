"""
Call plan builder for subdomain provisioning
Turns a validated request into the independent Cloudflare calls it needs
"""

import logging
from typing import Any, Dict, List

from service_config import DEFAULT_INGRESS_ADDRESS, DEFAULT_REDIRECT_TARGET
from services.provisioning_models import CallSpec

logger = logging.getLogger(__name__)

# Store proxy defaults applied to every provisioned subdomain
STORE_PAGE_RULE_ACTIONS = [
    {'id': 'ssl', 'value': 'flexible'},
    {'id': 'always_online', 'value': 'on'},
    {'id': 'security_level', 'value': 'medium'},
    {'id': 'cache_level', 'value': 'cache_everything'},
    {'id': 'explicit_cache_control', 'value': 'on'},
]


def dns_records_path(zone_id: str) -> str:
    return f"/zones/{zone_id}/dns_records"


def page_rules_path(zone_id: str) -> str:
    return f"/zones/{zone_id}/pagerules"


def _a_record(name: str, content: str) -> Dict[str, Any]:
    return {
        'type': 'A',
        'name': name,
        'content': content,
        'proxied': True
    }


def _page_rule(url_pattern: str, actions: List[Dict[str, Any]], priority: int) -> Dict[str, Any]:
    return {
        'targets': [{
            'target': 'url',
            'constraint': {
                'operator': 'matches',
                'value': url_pattern
            }
        }],
        'actions': actions,
        'priority': priority,
        'status': 'active'
    }


def build_call_plan(
    request,
    ingress_address: str = DEFAULT_INGRESS_ADDRESS,
    redirect_target: str = DEFAULT_REDIRECT_TARGET
) -> List[CallSpec]:
    """
    Build the ordered list of Cloudflare calls for one provisioning request

    Args:
        request: Validated ProvisioningRequest
        ingress_address: A record content for the store subdomain
        redirect_target: A record content for the apex when redirecting

    Returns:
        3 CallSpecs, or 5 when domain_redirect is requested
    """
    zone_id = request.credentials.zone_id
    full_domain = request.full_domain
    dns_path = dns_records_path(zone_id)
    rules_path = page_rules_path(zone_id)

    calls = [
        CallSpec(
            path=dns_path,
            payload=_a_record(request.subdomain, ingress_address),
            label='subdomain_dns_record'
        )
    ]

    if request.domain_redirect:
        calls.append(CallSpec(
            path=dns_path,
            payload=_a_record('@', redirect_target),
            label='apex_dns_record',
            redirect_only=True
        ))

    calls.append(CallSpec(
        path=rules_path,
        payload=_page_rule(f"{full_domain}/*", [dict(action) for action in STORE_PAGE_RULE_ACTIONS], 1),
        label='store_page_rule'
    ))

    calls.append(CallSpec(
        path=rules_path,
        payload=_page_rule(f"http://{full_domain}/*", [{'id': 'always_use_https', 'value': 'on'}], 2),
        label='force_https_page_rule'
    ))

    if request.domain_redirect:
        calls.append(CallSpec(
            path=rules_path,
            payload=_page_rule(f"{request.domain}/*", [{
                'id': 'forwarding_url',
                'value': {
                    'url': f"https://{full_domain}/$1",
                    'status_code': 302
                }
            }], 3),
            label='domain_forwarding_page_rule',
            redirect_only=True
        ))

    logger.debug(f"🗺️ Call plan for {full_domain}: {[call.label for call in calls]}")
    return calls
