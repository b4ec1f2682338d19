"""Static usage banner for koor-cli."""

from __future__ import annotations

USAGE = """\
Usage: koor-cli <command> [args]

Commands:
  config set server <url>         Set server URL
  config set token <token>        Set auth token
  config show                     Show effective server/token and their sources
  status                          Check server health
  version                         Show CLI version

  state list                      List all state keys
  state get <key>                 Get state value
  state set <key> --file <path>   Set state from file
  state set <key> --data <json>   Set state from inline data
  state delete <key>              Delete state key
  state history <key> [--limit N]             Version history
  state rollback <key> --version V            Roll back to version V
  state diff <key> --v1 A --v2 B              Diff two versions

  specs list <project>            List specs for a project
  specs get <project>/<name>      Get a spec
  specs set <project>/<name> --file <path> | --data <json>
  specs delete <project>/<name>   Delete a spec

  contract set <project>/<name> --file <path> | --data <json>
  contract get <project>/<name>   Show a contract
  contract validate <project>/<name> --endpoint "POST /api/x"
        [--direction request|response] [--payload <json> | --file <path>]
  contract test <project>/<name> --target <base-url>

  events publish <topic> --file <path> | --data <json>
  events history [--last N] [--topic pattern] [--from T] [--to T] [--source S]
  events subscribe [pattern] [--poll]         Stream events (polls history as fallback)

  rules import --file <path> | --data <json>  Import a JSON array of rules
  rules export [--source S] [--output <path>] Export rules

  webhooks list                   List webhooks
  webhooks add <id> --url <url> [--patterns a,b] [--secret S]
  webhooks delete <id>            Delete a webhook
  webhooks test <id>              Send a test delivery

  compliance history [--instance_id I] [--limit N]
  compliance run                  Run compliance checks now

  templates list [--kind K] [--tag T]
  templates get <id>
  templates create <id> --name N [--kind K] [--description D] [--tags a,b]
        --file <path> | --data <json>
  templates delete <id>
  templates apply <id> --project P

  audit [--actor A] [--action A] [--from T] [--to T] [--limit N]
  audit summary [--from T] [--to T]

  metrics agents [<id>] [--instance_id I] [--period P]

  instances list [--name N] [--workspace W] [--stack S] [--capability C]
  instances get <id>
  instances stale
  register <name> [--workspace W] [--intent I] [--stack S]
  activate <id>

  backup --output <path>          Save state and rules to a file
  restore --file <path>           Restore state and rules from a backup file

Flags:
  --pretty                        Pretty-print JSON output
  --config <path>                 Settings file, given before the command
                                  (default: ./settings.json)

Environment:
  KOOR_SERVER                     Server URL (overrides config)
  KOOR_TOKEN                      Auth token (overrides config)"""

__all__ = ["USAGE"]
