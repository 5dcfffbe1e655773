"""In-memory LoadMaster appliance for tests.

Implements the LoadMasterAPI call surface against dictionaries and
reproduces the appliance quirks the reconcilers depend on: the error
messages it uses for missing entities, the SubVS/Rs collections, the
"!<index>" real server addressing, and base64-encoding stored files only
when they contain multi-byte characters.
"""

import base64
import itertools
import os
from collections import defaultdict
from typing import Any, Dict, List, Tuple

from loadmaster_sync.api.errors import LoadMasterError
from loadmaster_sync.api.models import (
    RULE_COLLECTIONS,
    CommandResponse,
    DataResponse,
    OwaspRuleResponse,
    RealServerResponse,
    RuleResponse,
    VirtualService,
)

# addrule/modrule parameter -> showrule field
RULE_FIELDS = {
    'pattern': 'Pattern',
    'matchtype': 'MatchType',
    'inchost': 'IncHost',
    'nocase': 'NoCase',
    'negate': 'Negate',
    'incquery': 'IncQuery',
    'header': 'Header',
    'replacement': 'Replacement',
    'setonmatch': 'SetOnMatch',
    'onlyonflag': 'OnlyOnFlag',
    'onlyonnoflag': 'OnlyOnNoFlag',
    'mustfail': 'MustFail',
}

RULE_DEFAULTS = {
    'Pattern': '',
    'MatchType': 'regex',
    'IncHost': False,
    'NoCase': False,
    'Negate': False,
    'IncQuery': False,
    'Header': '',
    'Replacement': '',
    'SetOnMatch': 0,
    'OnlyOnFlag': 0,
    'OnlyOnNoFlag': 0,
    'MustFail': False,
}

RS_DEFAULTS = {
    'Weight': 1000,
    'Forward': 'nat',
    'Enable': True,
    'Limit': 0,
    'Critical': False,
    'Follow': 0,
    'DnsName': '',
}

STORAGE_TERMINATOR = "\r\n"


def unknown_vs() -> LoadMasterError:
    return LoadMasterError(422, "Unknown VS")


class FakeLoadMaster:
    """Dictionary-backed stand-in for the appliance."""

    def __init__(self):
        self.services: Dict[int, Dict[str, Any]] = {}
        self.rules: Dict[str, Tuple[int, Dict[str, Any]]] = {}
        self.custom_data: Dict[str, str] = {}
        self.custom_rules: Dict[str, str] = {}
        self.attachments: Dict[Tuple[str, str], bool] = {}
        self.wire_payloads: Dict[str, str] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self._failures: Dict[str, List[Exception]] = defaultdict(list)
        self._vs_ids = itertools.count(1)
        self._rs_ids = itertools.count(1)

    # Test helpers

    def fail_next(self, method: str, *errors: Exception) -> None:
        """Queue errors raised by the next calls of ``method``."""
        self._failures[method].extend(errors)

    def call_count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def _enter(self, method: str, *args) -> None:
        self.calls.append((method, args))
        if self._failures[method]:
            raise self._failures[method].pop(0)

    # Virtual services

    def add_virtual_service(self, address, port, protocol, params):
        self._enter('add_virtual_service', address, port, protocol, params)
        index = next(self._vs_ids)
        self.services[index] = {
            'Index': index,
            'VSAddress': address,
            'VSPort': str(port),
            'Protocol': protocol,
            'NickName': '',
            'Enable': True,
            'VSType': 'gen',
            'MasterVSID': 0,
            'SubVS': [],
            'Rs': [],
        }
        self._apply_vs_params(self.services[index], params)
        return self._vs_model(index)

    def show_virtual_service(self, index):
        self._enter('show_virtual_service', index)
        return self._vs_model(self._vs_index(index))

    def modify_virtual_service(self, index, params):
        self._enter('modify_virtual_service', index, params)
        vs_index = self._vs_index(index)
        self._apply_vs_params(self.services[vs_index], params)
        return self._vs_model(vs_index)

    def delete_virtual_service(self, index):
        self._enter('delete_virtual_service', index)
        self._remove_vs(self._vs_index(index))
        return CommandResponse(code=200, message="Command completed ok", status="ok")

    # Sub virtual services

    def add_sub_virtual_service(self, parent, params):
        self._enter('add_sub_virtual_service', parent, params)
        parent_index = self._vs_index(parent)
        parent_vs = self.services[parent_index]
        index = next(self._vs_ids)
        name = f"-{len(parent_vs['SubVS']) + 1}"
        self.services[index] = {
            'Index': index,
            'VSAddress': '',
            'VSPort': '',
            'Protocol': parent_vs['Protocol'],
            'NickName': name,
            'Enable': True,
            'VSType': 'gen',
            'MasterVSID': parent_index,
            'SubVS': [],
            'Rs': [],
        }
        parent_vs['SubVS'].append({'VSIndex': index, 'Name': name})
        return self._vs_model(parent_index)

    def show_sub_virtual_service(self, index):
        self._enter('show_sub_virtual_service', index)
        return self._vs_model(self._vs_index(index))

    def modify_sub_virtual_service(self, index, params):
        self._enter('modify_sub_virtual_service', index, params)
        vs_index = self._vs_index(index)
        self._apply_vs_params(self.services[vs_index], params)
        return self._vs_model(vs_index)

    def delete_sub_virtual_service(self, index):
        self._enter('delete_sub_virtual_service', index)
        self._remove_vs(self._vs_index(index))
        return CommandResponse()

    # Real servers

    def add_real_server(self, vs, rs, port, params):
        self._enter('add_real_server', vs, rs, port, params)
        service = self.services[self._vs_index(vs)]
        server = {
            'RsIndex': next(self._rs_ids),
            'VSIndex': service['Index'],
            'Addr': rs,
            'Port': int(port),
            **RS_DEFAULTS,
        }
        self._apply_params(server, params)
        service['Rs'].append(server)
        matching = [s for s in service['Rs'] if s['Addr'] == rs]
        return RealServerResponse.model_validate({'Rs': matching})

    def show_real_server(self, vs, rs):
        self._enter('show_real_server', vs, rs)
        return RealServerResponse.model_validate({'Rs': [self._find_rs(vs, rs)]})

    def modify_real_server(self, vs, rs, params):
        self._enter('modify_real_server', vs, rs, params)
        server = self._find_rs(vs, rs)
        self._apply_params(server, params)
        return RealServerResponse.model_validate({'Rs': [server]})

    def delete_real_server(self, vs, rs):
        self._enter('delete_real_server', vs, rs)
        server = self._find_rs(vs, rs)
        self.services[server['VSIndex']]['Rs'].remove(server)
        return CommandResponse()

    # Content rules

    def add_rule(self, rule_type, name, params):
        self._enter('add_rule', rule_type, name, params)
        if name in self.rules:
            raise LoadMasterError(422, "Rule already exists")
        fields = {'Name': name, **RULE_DEFAULTS}
        self._apply_rule_params(fields, params)
        self.rules[name] = (rule_type, fields)
        return self._rule_model(name)

    def show_rule(self, name):
        self._enter('show_rule', name)
        return self._rule_model(name)

    def modify_rule(self, name, params):
        self._enter('modify_rule', name, params)
        self._rule_model(name)
        self._apply_rule_params(self.rules[name][1], params)
        return self._rule_model(name)

    def delete_rule(self, name):
        self._enter('delete_rule', name)
        self._rule_model(name)
        del self.rules[name]
        return CommandResponse()

    # OWASP custom data and rules

    def add_owasp_custom_data(self, filename, data):
        self._enter('add_owasp_custom_data', filename, data)
        self.wire_payloads[filename] = data
        self.custom_data[filename] = self._store(data)
        return CommandResponse()

    def show_owasp_custom_data(self, filename):
        self._enter('show_owasp_custom_data', filename)
        if filename not in self.custom_data:
            raise LoadMasterError(404, "File not found")
        return DataResponse.model_validate({'Data': self._download(self.custom_data[filename])})

    def delete_owasp_custom_data(self, filename):
        self._enter('delete_owasp_custom_data', filename)
        for stored in list(self.custom_data):
            if os.path.splitext(stored)[0] == filename:
                del self.custom_data[stored]
                return CommandResponse()
        raise LoadMasterError(404, "File not found")

    def add_owasp_custom_rule(self, filename, data):
        self._enter('add_owasp_custom_rule', filename, data)
        self.wire_payloads[filename] = data
        self.custom_rules[os.path.splitext(filename)[0]] = self._store(data)
        return CommandResponse()

    def show_owasp_custom_rule(self, filename):
        self._enter('show_owasp_custom_rule', filename)
        if filename not in self.custom_rules:
            raise LoadMasterError(422, "Unknown Rule")
        return DataResponse.model_validate({'Data': self._download(self.custom_rules[filename])})

    def delete_owasp_custom_rule(self, filename):
        self._enter('delete_owasp_custom_rule', filename)
        if filename not in self.custom_rules:
            raise LoadMasterError(422, "Unknown Rule")
        del self.custom_rules[filename]
        return CommandResponse()

    # Rule attachments

    def add_virtual_service_owasp_rule(self, vs, rule, run_first):
        self._enter('add_virtual_service_owasp_rule', vs, rule, run_first)
        self._vs_index(vs)
        if rule not in self.custom_rules:
            raise LoadMasterError(422, "Unknown Rule")
        self.attachments[(str(vs), rule)] = bool(run_first)
        return CommandResponse()

    def show_virtual_service_owasp_rule(self, vs, rule):
        self._enter('show_virtual_service_owasp_rule', vs, rule)
        key = (str(vs), rule)
        if key not in self.attachments:
            raise LoadMasterError(422, "Rule not found")
        return OwaspRuleResponse.model_validate({
            'Rule': {'Name': rule, 'RunFirst': 'yes' if self.attachments[key] else 'no'}
        })

    def delete_virtual_service_owasp_rule(self, vs, rule):
        self._enter('delete_virtual_service_owasp_rule', vs, rule)
        key = (str(vs), rule)
        if key not in self.attachments:
            raise LoadMasterError(422, "Rule not found")
        del self.attachments[key]
        return CommandResponse()

    # Internals

    def _vs_index(self, index) -> int:
        text = str(index)
        if not text.isdigit() or int(text) not in self.services:
            raise unknown_vs()
        return int(text)

    def _vs_model(self, index: int) -> VirtualService:
        return VirtualService.model_validate(self.services[index])

    def _remove_vs(self, index: int) -> None:
        service = self.services.pop(index)
        for sub in service['SubVS']:
            self.services.pop(sub['VSIndex'], None)
        master = self.services.get(service['MasterVSID'])
        if master is not None:
            master['SubVS'] = [s for s in master['SubVS'] if s['VSIndex'] != index]

    def _apply_vs_params(self, service: Dict[str, Any], params: Dict[str, Any]) -> None:
        for key in ('NickName', 'Enable', 'VSType'):
            if key not in params:
                continue
            # An empty value clears the nickname and leaves the rest untouched
            if params[key] != '' or key == 'NickName':
                service[key] = params[key]

    def _find_rs(self, vs, rs) -> Dict[str, Any]:
        service = self.services[self._vs_index(vs)]
        text = str(rs)
        for server in service['Rs']:
            if text.startswith('!'):
                if str(server['RsIndex']) == text[1:]:
                    return server
            elif server['Addr'] == text:
                return server
        raise LoadMasterError(422, "Unknown RS")

    def _apply_params(self, target: Dict[str, Any], params: Dict[str, Any]) -> None:
        for key, value in params.items():
            target[key] = RS_DEFAULTS.get(key) if value == '' else value

    def _rule_model(self, name: str) -> RuleResponse:
        if name not in self.rules:
            raise LoadMasterError(422, "Rule not found")
        rule_type, fields = self.rules[name]
        return RuleResponse.model_validate({RULE_COLLECTIONS[rule_type]: [fields]})

    def _apply_rule_params(self, fields: Dict[str, Any], params: Dict[str, Any]) -> None:
        for key, value in params.items():
            field = RULE_FIELDS[key]
            fields[field] = RULE_DEFAULTS[field] if value == '' else value

    def _store(self, payload: str) -> str:
        return base64.b64decode(payload).decode('utf-8') + STORAGE_TERMINATOR

    def _download(self, stored: str) -> str:
        if stored.isascii():
            return stored
        return base64.b64encode(stored.encode('utf-8')).decode('ascii')
