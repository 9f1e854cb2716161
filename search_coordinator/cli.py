"""
Command Line Interface for the distributed search coordinator
"""
import asyncio
import json
import sys

import click

from search_coordinator.core.cluster import SearchCluster
from search_coordinator.core.config import (
    ClusterConfig,
    CoordinatorConfig,
    LoadBalancingStrategy,
    MergeStrategy,
    NodeConfig,
    NodeSpec,
)
from search_coordinator.core.errors import SearchClusterError
from search_coordinator.core.node import SearchNode
from search_coordinator.transport.client import HttpSearchClient
from search_coordinator.utils.helpers import format_duration, format_time_ago, parse_node_option
from search_coordinator.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def _load_config(ctx) -> ClusterConfig:
    config_file = ctx.obj.get('config_file')
    if config_file:
        return ClusterConfig.load_from_file(config_file)
    return ClusterConfig.from_env()


def _node_specs(config: ClusterConfig, node_options) -> list:
    if node_options:
        try:
            return [NodeSpec(**parse_node_option(value)) for value in node_options]
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--node")
    return list(config.nodes)


@click.group()
@click.option('--config', '-c', help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--log-file', help='Also write logs to this file')
@click.pass_context
def cli(ctx, config, verbose, log_file):
    """Distributed Search Coordinator CLI"""
    setup_logging('DEBUG' if verbose else 'INFO', log_file)

    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config


@cli.command()
@click.option('--node-id', help='Unique node identifier')
@click.option('--host', help='Host to bind to')
@click.option('--port', type=int, help='Port to bind to')
@click.option('--documents', help='JSON file with the documents to index')
@click.pass_context
def serve_node(ctx, node_id, host, port, documents):
    """Start a search node serving a local document index"""
    config = _load_config(ctx)
    node_config = config.node or NodeConfig(node_id=node_id or "node_1")

    overrides = {
        'node_id': node_id,
        'host': host,
        'port': port,
        'documents_file': documents,
    }
    node_config = node_config.model_copy(update={k: v for k, v in overrides.items() if v is not None})

    node = SearchNode(node_config)
    click.echo(f"Starting search node '{node_config.node_id}' on {node.url}")
    click.echo(f"Documents indexed: {len(node.index)}")

    try:
        asyncio.run(node.serve_forever())
    except KeyboardInterrupt:
        click.echo(f"\nShutting down node '{node_config.node_id}'...")


@cli.command()
@click.argument('query')
@click.option('--node', '-n', 'node_options', multiple=True,
              help='Node as node_id=url[@weight] (can be specified multiple times)')
@click.option('--limit', default=10, type=int, help='Maximum number of hits')
@click.option('--offset', default=0, type=int, help='Number of hits to skip')
@click.option('--timeout-ms', type=int, help='Per-node timeout in milliseconds')
@click.option('--merge-strategy', type=click.Choice([s.value for s in MergeStrategy]),
              help='How node results are merged')
@click.option('--strategy', type=click.Choice([s.value for s in LoadBalancingStrategy]),
              help='How nodes are selected')
@click.option('--output', '-o', help='Output file for results (JSON format)')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw result as JSON')
@click.pass_context
def search(ctx, query, node_options, limit, offset, timeout_ms, merge_strategy, strategy, output, as_json):
    """Search across the configured search nodes"""
    config = _load_config(ctx)
    nodes = _node_specs(config, node_options)
    if not nodes:
        click.echo("No search nodes configured; use --node or a configuration file", err=True)
        sys.exit(1)

    changes = {
        'timeout_ms': timeout_ms,
        'merge_strategy': merge_strategy,
        'load_balancing_strategy': strategy,
    }
    changes = {k: v for k, v in changes.items() if v is not None}

    try:
        with SearchCluster(HttpSearchClient(), config.coordinator.merged(changes), name="cli") as cluster:
            cluster.add_nodes(nodes)
            result = cluster.search(query, limit, offset)
    except SearchClusterError as e:
        click.echo(f"Search error: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        click.echo(f"\nSearch completed in {format_duration(result.took_ms)}:")
        click.echo(f"  Total hits: {result.total_hits}")
        click.echo(f"  Nodes searched: {len(result.node_responses)}")

        if result.hits:
            click.echo("\nResults:")
            for i, hit in enumerate(result.hits, offset + 1):
                title = hit.fields.get('title') or hit.fields.get('id', '')
                click.echo(f"  {i}. {title}  (score {hit.score:.4f}, node {hit.node_id})")
        else:
            click.echo("\nNo results found.")

        for error in result.errors:
            click.echo(f"  ! {error}", err=True)

    if output:
        with open(output, 'w') as f:
            json.dump(result.to_dict(), f, indent=2)
        click.echo(f"Results saved to {output}")


@cli.command()
@click.option('--node', '-n', 'node_options', multiple=True,
              help='Node as node_id=url[@weight] (can be specified multiple times)')
@click.pass_context
def status(ctx, node_options):
    """Probe every configured node once and report its health"""
    config = _load_config(ctx)
    nodes = _node_specs(config, node_options)

    with SearchCluster(HttpSearchClient(), config.coordinator, name="cli") as cluster:
        try:
            cluster.add_nodes(nodes)
        except SearchClusterError as e:
            click.echo(f"Status error: {e}", err=True)
            sys.exit(1)
        cluster.check_health()
        stats = cluster.get_cluster_stats()

        click.echo("Cluster Status:")
        click.echo(f"  Total nodes: {stats['total_nodes']}")
        click.echo(f"  Active nodes: {stats['active_nodes']}")
        click.echo(f"  Inactive nodes: {stats['inactive_nodes']}")

        click.echo(f"\nNodes ({stats['total_nodes']}):")
        if not nodes:
            click.echo("  No nodes registered")
        for entry in nodes:
            node = cluster.get_node_stats(entry.node_id)
            indicator = "UP  " if node['active'] else "DOWN"
            click.echo(f"  [{indicator}] {node['node_id']} ({node['locator']}, weight {node['weight']})")
            if node['last_checked']:
                click.echo(f"    Last checked: {format_time_ago(node['last_checked'])}")
            if node['average_latency_ms']:
                click.echo(f"    Probe latency: {format_duration(node['average_latency_ms'])}")


@cli.command()
@click.option('--output', '-o', default='search_config.json', help='Output configuration file')
@click.pass_context
def init_config(ctx, output):
    """Initialize a configuration file with default settings"""
    config = ClusterConfig(
        coordinator=CoordinatorConfig(),
        nodes=[
            NodeSpec(node_id="node_1", locator="http://localhost:8001"),
            NodeSpec(node_id="node_2", locator="http://localhost:8002"),
        ],
        node=NodeConfig(node_id="node_1", port=8001),
    )

    config.save_to_file(output)
    logger.debug(f"Wrote default configuration to {output}")
    click.echo(f"Configuration file created: {output}")
    click.echo("Edit the file to customize settings, then use:")
    click.echo(f"  search-coordinator -c {output} serve-node --documents docs.json")
    click.echo(f"  search-coordinator -c {output} search \"some query\"")


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
