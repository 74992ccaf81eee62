# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# Server certificate verification helpers for TLS connections

# Standard library imports
import logging
import re

from typing import Any, Dict, List, Optional, Union

# Short names for the subject attributes reported by ssl.SSLSocket.getpeercert()
ATTRIBUTE_SHORT_NAMES = {
    "commonName": "CN",
    "organizationName": "O",
    "organizationalUnitName": "OU",
    "countryName": "C",
    "localityName": "L",
    "stateOrProvinceName": "ST",
}


class CertificateRule:
    """
    A rule for verifying certificate attributes.

    This class represents a rule that can be used to verify attributes
    in the log endpoint's certificate, such as the Common Name (CN) or
    Organizational Unit (OU).
    """

    def __init__(
        self,
        attribute: str,
        pattern: str,
        required: bool = True,
    ):
        """
        Initialize a certificate verification rule.

        Args:
            attribute: The certificate attribute to check (e.g., "CN", "OU")
            pattern: The regex pattern to match against the attribute value
            required: Whether this attribute is required to be present
        """
        self.attribute = attribute
        self.pattern_str = pattern
        self.required = required

        # Compile the regex pattern
        try:
            self.pattern = re.compile(pattern)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern '{pattern}': {e}")

    def __repr__(self) -> str:
        """Return a string representation of the rule."""
        return (
            f"CertificateRule(attribute='{self.attribute}', "
            f"pattern='{self.pattern_str}', required={self.required})"
        )


class CertificateVerifier:
    """
    Checks the certificate presented by the log endpoint against a set of rules.

    The certificate must come from a verified handshake: with verification
    disabled Python reports an empty certificate and every required rule fails.
    """

    def __init__(self, rules: Optional[List[CertificateRule]] = None):
        """
        Initialize the certificate verifier.

        Args:
            rules: A list of certificate verification rules
        """
        self.logger = logging.getLogger(
            "ziggiz_courier_dropoff_stash.protocol.cert_verify"
        )
        self.rules = rules or []

    def add_rule(self, rule: CertificateRule) -> None:
        """
        Add a rule to the verifier.

        Args:
            rule: The rule to add
        """
        self.rules.append(rule)

    def extract_cert_attributes(self, cert: Dict[str, Any]) -> Dict[str, str]:
        """
        Extract subject attributes from a decoded certificate.

        Args:
            cert: The dictionary returned by SSLSocket.getpeercert()

        Returns:
            A dictionary of subject attributes keyed by both their long
            and short names (e.g. "commonName" and "CN")
        """
        attributes = {}

        # The subject is a sequence of RDNs, each a sequence of (key, value) pairs
        for rdn in cert.get("subject", ()):
            for key, value in rdn:
                attributes[key] = value
                short_name = ATTRIBUTE_SHORT_NAMES.get(key)
                if short_name:
                    attributes[short_name] = value
        return attributes

    def verify_certificate(self, cert: Optional[Dict[str, Any]]) -> bool:
        """
        Verify a certificate against the configured rules.

        Args:
            cert: The dictionary returned by SSLSocket.getpeercert()

        Returns:
            True if the certificate passes all rules, False otherwise
        """
        if not self.rules:
            return True

        # Extract certificate attributes
        attributes = self.extract_cert_attributes(cert or {})
        self.logger.debug(f"Certificate attributes: {attributes}")

        # Check each rule
        for rule in self.rules:
            attribute_value = attributes.get(rule.attribute)

            # Check if the attribute is present
            if attribute_value is None:
                if rule.required:
                    self.logger.warning(
                        f"Required attribute '{rule.attribute}' not found in certificate"
                    )
                    return False
                # Attribute is not required, so skip this rule
                continue

            # Check if the attribute matches the pattern
            if not rule.pattern.match(attribute_value):
                self.logger.warning(
                    f"Attribute '{rule.attribute}' with value '{attribute_value}' "
                    f"does not match pattern '{rule.pattern_str}'"
                )
                return False

        # All rules passed
        return True


def create_verifier_from_config(
    rules_config: List[Union[Dict[str, Union[str, bool]], Any]],
) -> CertificateVerifier:
    """
    Create a certificate verifier from rule configurations.

    Args:
        rules_config: A list of rule configurations, either dictionaries with
                     'attribute', 'pattern', and optional 'required' keys, or
                     CertificateRuleConfig models

    Returns:
        A configured CertificateVerifier

    Raises:
        ValueError: If the configuration is invalid
    """
    verifier = CertificateVerifier()

    for rule_config in rules_config:
        if not isinstance(rule_config, dict):
            rule_config = rule_config.model_dump()

        attribute = rule_config.get("attribute")
        pattern = rule_config.get("pattern")
        required = rule_config.get("required", True)

        # Validate parameters
        if not attribute:
            raise ValueError("Certificate rule must specify an 'attribute'")
        if not pattern:
            raise ValueError("Certificate rule must specify a 'pattern'")

        # Create and add the rule
        verifier.add_rule(
            CertificateRule(
                attribute=attribute,
                pattern=pattern,
                required=required,
            )
        )

    return verifier
