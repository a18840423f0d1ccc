import uuid
import click
import secrets
import base64
import jwt
from payouts.config import setting
from payouts.utils import derive_fernet
import requests

SERVER_URL = "http://localhost:8000"

def create_jwt_token():
    """Helper function to create a JWT token for a single request."""
    payload = {
        "sub": "cli",
        "jti": str(uuid.uuid4()),
        "exp": 9999999999  # Set a far future expiration
    }
    token = jwt.encode(payload, setting.JWT_SECRET_KEY, algorithm=setting.JWT_ALGORITHM)
    return token

def auth_headers():
    return {"Authorization": f"Bearer {create_jwt_token()}"}

@click.group()
def cli():
    pass

@cli.command()
@click.option('--length', default=32, help='Length of the generated JWT secret key')
def generate_jwt_secret(length):
    """Generate a secure random string suitable for a JWT secret key."""
    # Generate random bytes
    random_bytes = secrets.token_bytes(length)

    # Convert to base64 for readability and usability
    jwt_secret = base64.b64encode(random_bytes).decode('utf-8')

    print(f"JWT_SECRET_KEY={jwt_secret}")

    return jwt_secret

@cli.command()
@click.option('--api-key', type=str, prompt="CDP API private key", hide_input=True, help='CDP API private key')
@click.option('--password', type=str, prompt="Password to encrypt the API key", hide_input=True, help='Password for the cipher text')
def generate_cipher_text(api_key: str, password: str):
    """Encrypt the CDP API private key with a password."""
    fernet = derive_fernet(password)
    cipher_text = fernet.encrypt(api_key.encode('utf-8')).decode('utf-8')

    print(f"CIPHER_TEXT={cipher_text}")

    return cipher_text

@cli.command()
@click.option('--network', type=str, default="base", help='Network to pay on')
@click.option('--asset', type=str, prompt="Asset", help='Asset id, e.g. eth or usdc')
@click.option('--amount', type=str, prompt="Amount per recipient", help='Amount per recipient')
@click.option('--recipient', 'recipients', type=str, multiple=True, required=True, help='Recipient address, repeatable')
@click.option('--no-fee', is_flag=True, default=False, help='Opt out of the protocol fee')
@click.option('--server-url', default=SERVER_URL, help='Payouts API base URL')
def mass_payout(network: str, asset: str, amount: str, recipients: tuple, no_fee: bool, server_url: str):
    """Pay the same amount to every recipient."""
    response = requests.post(
        f"{server_url}/api/v1/payouts",
        json={
            "network": network,
            "asset": asset,
            "amount": amount,
            "recipients": list(recipients),
            "fee_opt_in": not no_fee,
        },
        headers=auth_headers(),
    )
    body = response.json()
    print(body.get("summary", body))

@cli.command()
@click.option('--network', type=str, default="base", help='Network to trade on')
@click.option('--amount', type=str, prompt="Amount", help='Amount of the source asset')
@click.option('--source-asset', type=str, prompt="Source asset", help='Asset to sell')
@click.option('--target-asset', type=str, prompt="Target asset", help='Asset to buy')
@click.option('--no-fee', is_flag=True, default=False, help='Opt out of the protocol fee')
@click.option('--server-url', default=SERVER_URL, help='Payouts API base URL')
def trade(network: str, amount: str, source_asset: str, target_asset: str, no_fee: bool, server_url: str):
    """Trade one asset for another."""
    response = requests.post(
        f"{server_url}/api/v1/trades",
        json={
            "network": network,
            "amount": amount,
            "source_asset": source_asset,
            "target_asset": target_asset,
            "fee_opt_in": not no_fee,
        },
        headers=auth_headers(),
    )
    body = response.json()
    print(body.get("summary", body))

@cli.command()
@click.option('--server-url', default=SERVER_URL, help='Payouts API base URL')
def past_payouts(server_url: str):
    """Print the payouts recorded in the audit log."""
    response = requests.get(f"{server_url}/api/v1/payouts", headers=auth_headers())
    body = response.json()
    print(body.get("summary", body))

if __name__ == "__main__":
    cli()
