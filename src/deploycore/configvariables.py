"""
Replace appSettings and connectionStrings values in XML configuration files.

Only entries whose key (``appSettings/add/@key``) or name
(``connectionStrings/add/@name``) matches a variable are touched; the file
is rewritten only when a value actually changed.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Protocol

from deploycore.errors import StepFailure
from deploycore.variables import VariableDictionary

logger = logging.getLogger(__name__)

# (section element, identifying attribute, value attribute)
_REPLACEMENTS = (
    ("appSettings", "key", "value"),
    ("connectionStrings", "name", "connectionString"),
)


class ConfigurationVariablesReplacer(Protocol):
    def modify_configuration_file(self, path: Path, variables: VariableDictionary) -> None:
        ...


class XmlConfigurationVariablesReplacer:
    """Rewrite matching ``<add>`` entries of an XML config file in place."""

    def modify_configuration_file(self, path: Path, variables: VariableDictionary) -> None:
        declared = path.read_bytes().lstrip().startswith(b"<?xml")
        parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
        try:
            tree = ET.parse(path, parser=parser)
        except ET.ParseError as e:
            raise StepFailure(f"Could not read configuration file {path}: {e}") from e

        changed = self._replace(tree.getroot(), variables)
        if not changed:
            logger.debug(f"No appSettings or connectionStrings to update in {path}")
            return

        tree.write(path, encoding="utf-8", xml_declaration=declared)
        logger.info(f"Updated {', '.join(changed)} in {path}")

    @staticmethod
    def _replace(root: ET.Element, variables: VariableDictionary) -> List[str]:
        changed = []
        for section, key_attribute, value_attribute in _REPLACEMENTS:
            for element in root.iter(section):
                for setting in element.findall("add"):
                    name = setting.get(key_attribute)
                    raw = variables.get(name) if name else None
                    if raw is None:
                        continue
                    value = variables.evaluate(raw)
                    if setting.get(value_attribute) == value:
                        continue
                    setting.set(value_attribute, value)
                    changed.append(f"{section}/{name}")
        return changed
