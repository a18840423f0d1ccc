# Short network names accepted by the API, mapped to CDP network ids
NETWORK_IDS = {
    "base": "base-mainnet",
    "base-sepolia": "base-sepolia",
    "eth": "ethereum-mainnet",
    "ethereum-holesky": "ethereum-holesky",
    "arb": "arbitrum-mainnet",
    "pol": "polygon-mainnet",
}


def canonical_network(network: str) -> str:
    """CDP network id for a short name or alias; unknown names come back normalized."""
    network = network.strip().lower().replace("_", "-")
    return NETWORK_IDS.get(network, network)


def network_id_for(network: str) -> str:
    network_id = canonical_network(network)
    if network_id not in NETWORK_IDS.values():
        raise ValueError(f"Unsupported network: {network}")
    return network_id
