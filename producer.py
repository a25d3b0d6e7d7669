"""Request event generator for the gate service.

Simulates front-end traffic with configurable normal and abusive client
profiles.  Each event is what a transport would hand the gate: the action
being attempted, the peer address, and the request headers.

Usage:
    python producer.py
    python producer.py --normal 20 --report-spammers 2 --scrapers 2 --proxied 3
    python producer.py --eps 100 --topic raw-requests
"""

import argparse
import json
import random
import signal
import time
from dataclasses import dataclass, field

from confluent_kafka import Producer
from confluent_kafka.admin import AdminClient, NewTopic

LANGUAGES = ["en-US,en;q=0.9", "ar-SA,ar;q=0.9", "en-GB", "fr-FR,fr;q=0.8"]

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down generator...")
    running = False


signal.signal(signal.SIGINT, _shutdown)   # Ctrl+C (local dev)
signal.signal(signal.SIGTERM, _shutdown)  # docker stop / k8s pod termination


# ---------------------------------------------------------------------------
# Client profiles
# ---------------------------------------------------------------------------

@dataclass
class Client:
    client_id: str
    role: str  # normal | report_spammer | scraper | uploader | proxied | tor
    requests_per_min: float
    action_weights: dict[str, float]
    remote_addr: str
    user_id: str | None = None  # sent as x-user-id when logged in
    language: str = "en-US,en;q=0.9"
    proxy_hops: list[str] = field(default_factory=list)
    tor_exit: bool = False
    ipv6_site: int | None = None  # rotates addresses inside this /56


def _ipv4():
    return f"203.0.113.{random.randint(1, 254)}:{random.randint(1024, 65535)}"


def _ipv6(site=None):
    # The site picks the /56; subnet and interface bits vary freely inside it.
    site = random.randint(0, 0xffff) if site is None else site
    return (f"[2001:db8:{site:x}:{random.randint(0, 0xff):x}::"
            f"{random.randint(1, 0xffff):x}]:{random.randint(1024, 65535)}")


def _create_clients(n_normal, n_spammers, n_scrapers, n_uploaders, n_proxied, n_tor):
    """Build the client pool.  Half the normal clients are logged in."""
    clients = []
    cid = 0

    def next_id():
        nonlocal cid
        cid += 1
        return f"client_{cid:04d}"

    # --- Normal: mostly browsing, the odd report or upload ---
    for _ in range(n_normal):
        client_id = next_id()
        clients.append(Client(
            client_id=client_id, role="normal",
            requests_per_min=random.uniform(2, 30),
            action_weights={"browse": 0.94, "report": 0.02, "upload": 0.04},
            remote_addr=random.choice([_ipv4, _ipv6])(),
            user_id=f"user_{client_id[-4:]}" if random.random() < 0.5 else None,
            language=random.choice(LANGUAGES),
        ))

    # --- Report spammers: flooding the moderation queue ---
    for _ in range(n_spammers):
        client_id = next_id()
        clients.append(Client(
            client_id=client_id, role="report_spammer",
            requests_per_min=random.uniform(20, 60),
            action_weights={"report": 0.9, "browse": 0.1},
            remote_addr=_ipv4(), user_id=f"user_{client_id[-4:]}",
        ))

    # --- Scrapers: high-volume browsing, anonymous, rotating IPv6 ---
    for _ in range(n_scrapers):
        site = random.randint(0, 0xffff)
        clients.append(Client(
            client_id=next_id(), role="scraper",
            requests_per_min=random.uniform(150, 400),
            action_weights={"browse": 1.0},
            remote_addr=_ipv6(site), ipv6_site=site,
        ))

    # --- Upload floods ---
    for _ in range(n_uploaders):
        client_id = next_id()
        clients.append(Client(
            client_id=client_id, role="uploader",
            requests_per_min=random.uniform(10, 40),
            action_weights={"upload": 0.8, "browse": 0.2},
            remote_addr=_ipv4(), user_id=f"user_{client_id[-4:]}",
        ))

    # --- Behind proxies: flagged suspicious, otherwise well behaved ---
    for _ in range(n_proxied):
        hops = [f"198.51.100.{random.randint(1, 254)}"
                for _ in range(random.randint(1, 3))]
        clients.append(Client(
            client_id=next_id(), role="proxied",
            requests_per_min=random.uniform(2, 20),
            action_weights={"browse": 0.95, "report": 0.05},
            remote_addr=_ipv4(), proxy_hops=hops,
        ))

    # --- Tor exits announcing themselves ---
    for _ in range(n_tor):
        clients.append(Client(
            client_id=next_id(), role="tor",
            requests_per_min=random.uniform(5, 50),
            action_weights={"browse": 0.7, "report": 0.3},
            remote_addr=_ipv4(), tor_exit=True,
        ))

    return clients


# ---------------------------------------------------------------------------
# Event generation
# ---------------------------------------------------------------------------

def _make_event(client: Client) -> dict:
    """Generate one request event for a client based on its profile."""
    actions = list(client.action_weights)
    action = random.choices(actions, weights=[client.action_weights[a] for a in actions])[0]

    headers = {"accept-language": client.language}
    if client.user_id:
        headers["x-user-id"] = client.user_id
    if client.proxy_hops:
        headers["x-forwarded-for"] = ", ".join(client.proxy_hops)
        headers["via"] = "1.1 proxy.example.net"
    if client.tor_exit:
        headers["x-tor-exit-node"] = "1"

    remote_addr = client.remote_addr
    if client.ipv6_site is not None:
        remote_addr = _ipv6(client.ipv6_site)

    return {
        "action": action,
        "timestamp": time.time(),
        "remote_addr": remote_addr,
        "headers": headers,
    }


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

def _ensure_topics(bootstrap_servers, topics):
    """Create Kafka topics if they don't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    new_topics = [NewTopic(t, num_partitions=3, replication_factor=3) for t in topics]
    fs = admin.create_topics(new_topics)
    for topic, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{topic}'")
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{topic}' already exists")
            else:
                raise


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="Gate request generator")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--topic", default="raw-requests")
    parser.add_argument("--normal", type=int, default=8)
    parser.add_argument("--report-spammers", type=int, default=1)
    parser.add_argument("--scrapers", type=int, default=1)
    parser.add_argument("--uploaders", type=int, default=1)
    parser.add_argument("--proxied", type=int, default=2)
    parser.add_argument("--tor", type=int, default=1)
    parser.add_argument("--eps", type=float, default=50, help="Target events/sec")
    args = parser.parse_args()

    clients = _create_clients(
        args.normal, args.report_spammers, args.scrapers,
        args.uploaders, args.proxied, args.tor,
    )
    weights = [c.requests_per_min for c in clients]

    print(f"Generating to topic '{args.topic}' at ~{args.eps} events/sec")
    print(f"Clients: {len(clients)} total")
    for c in clients:
        who = c.user_id or c.remote_addr
        print(f"  {c.client_id}  {c.role:<15s} ~{c.requests_per_min:>6.0f} rpm  {who}")

    _ensure_topics(args.bootstrap_servers, [args.topic])

    producer = Producer({
        "bootstrap.servers": args.bootstrap_servers,
        "acks": "all",
        "client.id": "gate-request-generator",
    })

    count = 0
    delay = 1.0 / args.eps

    while running:
        client = random.choices(clients, weights=weights, k=1)[0]
        event = _make_event(client)

        # Partition by client so one principal always lands on one gate instance.
        producer.produce(
            topic=args.topic,
            key=client.client_id.encode(),
            value=json.dumps(event),
        )
        producer.poll(0)

        count += 1
        if count % 500 == 0:
            print(f"  ... {count} events produced")

        time.sleep(delay)

    producer.flush()
    print(f"Done. {count} events produced.")


if __name__ == "__main__":
    main()
