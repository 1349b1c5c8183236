# CUI // SP-PROPIN
"""RFX Proposal Engine: requirement resolution and proposal synthesis.

Modules:
    models         dataclass records exchanged between components
    extraction     RFP text -> requirements/tests via the LLM router
    spec_matcher   deterministic catalog scoring (range/numeric/text rules)
    bom_pricer     bill of materials and surcharge roll-up
    risk           supply, timeline and match-confidence risk score
    compliance     standards checklist against the RFP text
    events         progress event channel (one-way, to UI/log/audit)
    settings       args/proposal_config.yaml loader
    catalog        JSON catalog and test-requirement loaders
    pipeline       extraction -> parallel analysis -> strategy orchestration
"""
