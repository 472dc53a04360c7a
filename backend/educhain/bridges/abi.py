"""Registry contract ABI, limited to the functions and events the adapter uses."""


def _fn(name, inputs, outputs=(), mutability="nonpayable"):
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


def _event(name, inputs):
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": idx} for n, t, idx in inputs],
    }


_CERTIFICATE_VIEW = [
    ("exists", "bool"),
    ("isValid", "bool"),
    ("studentName", "string"),
    ("courseName", "string"),
    ("institutionName", "string"),
    ("issueDate", "uint256"),
    ("grade", "string"),
    ("ipfsHash", "string"),
]

CERTIFICATE_REGISTRY_ABI = [
    _fn("registerInstitution", [("name", "string"), ("email", "string")]),
    _fn("authorizeInstitution", [("institution", "address")]),
    _fn(
        "getInstitutionStats",
        [("institution", "address")],
        [("isAuthorized", "bool"), ("registrationDate", "uint256"), ("certificateCount", "uint256")],
        mutability="view",
    ),
    _fn(
        "issueCertificate",
        [
            ("studentAddress", "address"),
            ("studentName", "string"),
            ("courseName", "string"),
            ("grade", "string"),
            ("ipfsHash", "string"),
            ("completionDate", "uint256"),
            ("certificateType", "string"),
        ],
        [("tokenId", "uint256")],
    ),
    _fn("verifyCertificate", [("tokenId", "uint256")], _CERTIFICATE_VIEW, mutability="view"),
    _fn(
        "verifyCertificateByIPFS",
        [("ipfsHash", "string")],
        [("tokenId", "uint256")] + _CERTIFICATE_VIEW,
        mutability="view",
    ),
    _fn("revokeCertificate", [("tokenId", "uint256"), ("reason", "string")]),
    _event(
        "CertificateIssued",
        [("tokenId", "uint256", True), ("student", "address", True), ("ipfsHash", "string", False)],
    ),
    _event(
        "CertificateRevoked",
        [("tokenId", "uint256", True), ("reason", "string", False)],
    ),
]
