from __future__ import annotations

import logging

import dns.exception
import dns.resolver

logger = logging.getLogger(__name__)


def email_domain_exists(email: str, timeout: float = 3.0) -> bool:
    """
    True when the email's domain has MX records, or at least an A record.

    Only a definitive "no such records" answer returns False. Timeouts and
    resolver failures return True so that registration is never blocked by DNS.
    """
    domain = email.rsplit("@", 1)[-1].strip().lower() if "@" in (email or "") else ""
    if not domain:
        return False

    try:
        resolver = dns.resolver.Resolver()
    except dns.exception.DNSException as exc:
        logger.warning("domain check skipped, no resolver: %s", exc)
        return True
    resolver.lifetime = timeout
    for rdtype in ("MX", "A"):
        try:
            answer = resolver.resolve(domain, rdtype)
            if len(answer) > 0:
                return True
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            continue
        except (dns.exception.Timeout, dns.resolver.NoNameservers) as exc:
            logger.warning("domain check for %s skipped: %s", domain, exc)
            return True
        except dns.exception.DNSException as exc:
            logger.warning("domain check for %s failed: %s", domain, exc)
            return True
    return False
