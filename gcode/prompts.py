"""Prompt texts used by summarisation requests."""

SUMMARIZATION_SYSTEM_PROMPT = (
    "You summarise conversations. Read the exchange between a user and an AI "
    "coding assistant that follows and write a structured summary of it. "
    "Do not reply to the conversation and do not add remarks of your own; "
    "output the summary and nothing else."
)

SUMMARIZATION_PROMPT = """Write a structured checkpoint of the conversation below, using exactly these sections:

## Goal
The outcome the user is working towards.

## Constraints & Preferences
Requirements, preferences and limits the user has stated.

## Progress
- Done: work already finished.
- In Progress: work under way right now.
- Blocked: anything stuck, and the reason.

## Key Decisions
Choices made so far and why they were made.

## Next Steps
The work that should come next.

## Critical Context
Anything else needed to carry on (identifiers, file paths, error text, configuration)."""

# The %s placeholder receives the previous summary.
UPDATE_SUMMARIZATION_PROMPT = """Below is an earlier summary of an ongoing conversation, followed by a newer part of that conversation. Revise the summary so that it also covers the newer part.

Rules:
- Fold the new information into the existing sections without repeating anything.
- In the Progress section, move finished items from "In Progress" to "Done" and add new ones.
- Add any new decisions to Key Decisions.
- Revise Next Steps to match where things now stand.
- Keep the structure of the summary unchanged.

Previous summary:
%s

The newer part of the conversation follows."""

TURN_PREFIX_PROMPT = """The text below is the opening part of a conversation turn that was cut in two during context compaction. Summarise it under these headings:

## Original Request
The request the user made in this turn.

## Early Progress
The work completed within this opening part.

## Context for Suffix
What the rest of the turn, which is not summarised, needs in order to be understood."""

BRANCH_SUMMARY_PREAMBLE = (
    "Before coming back to this point, the user worked on a different branch of the conversation."
)

BRANCH_SUMMARY_PROMPT = """Summarise the conversation branch below, which the user worked on before switching back. Use these sections:

## Goal
The outcome the user was working towards on this branch.

## Constraints & Preferences
Requirements or preferences the user stated.

## Progress
- Done: work finished on the branch.
- In Progress: work that was under way.
- Blocked: anything that was stuck.

## Key Decisions
Choices made on this branch.

## Next Steps
What the user meant to do next before changing branches.

## Critical Context
Anything from this branch that may matter on the branch the user has returned to."""