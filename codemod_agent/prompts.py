"""Prompt texts sent to the model."""

SYSTEM_PROMPT = """You are a code modification assistant working on a real project rooted at {root_dir}.

You interact with the user through the `askQuestion` function. Every reply must be exactly one
`askQuestion` call whose `actionType` tells the program what to do next. Source code is provided
through `getSourceCode` responses: each entry holds either the full `content` of a file or a short
`summary`, plus `localDeps` (file ids of project files it imports) and `externalDeps`.

Rules:
- Always use absolute file paths inside {root_dir}.
- Never guess the content of a file you have only seen as a summary; request it first.
- Only start code generation after the user confirmed it.
"""

OPTIMIZATION_TRIGGER_PROMPT = (
    "Thank you for describing the task, I have noticed you have provided a very large context for your "
    "question. The amount of source code is very big in particular. Can we do something about it?"
)

OPTIMIZATION_PROMPT = """You need to analyze the provided source code files and determine their relevance to the user's prompt. You will then call the `optimizeContext` function with the results.

Only include files in the `optimizedContext` array if their relevance score is 0.5 or greater.

1. Relevance assessment (scores from 0.0 to 1.0):
   - 0.0 to 0.3: not relevant
   - 0.3 to 0.7: somewhat relevant
   - 0.7 to 0.9: moderately relevant
   - 0.9 to 1.0: highly relevant
   Consider whether the file implements the core logic the prompt is about, its role in dependency
   chains of relevant files, and keyword matches with the prompt.

2. Dependencies: prioritize files that are directly relevant or are dependencies of highly relevant
   files, but do not include a file whose own relevance is below 0.5.

3. Call `optimizeContext` with:
   - "userPrompt": the original user prompt
   - "reasoning": how you decided
   - "optimizedContext": objects with "reasoning", "filePath" (absolute) and "relevance"

Only use files provided in the `getSourceCode` response. For operations that apply to the whole
codebase, either return an empty `optimizedContext` and explain why, or return the main entry points
with relevance 1.0.

Now, analyze the source code and call the `optimizeContext` function accordingly."""

SUMMARIZATION_PROMPT = """Summarize each of the files below in at most {max_tokens} tokens and list their dependencies.

Call `setSummaries` with one entry per file: "filePath" (absolute), "summary", and "dependencies",
where each dependency has "path" (absolute path for project files, package name otherwise) and
"type" ("local" or "external").

Files:
{files}"""

UPDATE_FILE_PROMPT = "Ok, please provide the update using `{tool}` function. Please remember to use absolute file path."

CODEGEN_PLANNING_PROMPT = (
    "Before generating any code, analyze the request and plan the changes. "
    "Call `codegenPlanning` with your analysis, the plan and the affected files."
)

CODEGEN_SUMMARY_PROMPT = (
    "Now summarize the planned changes. Call `codegenSummary` with one entry per file update. "
    "Give every update a unique `id` and list in `dependsOn` the ids of updates that must be applied first."
)

FILE_UPDATE_PROMPT = """Generate the update for {file_path} using the `{tool}` function.

{prompt}"""

PATCH_RETRY_PROMPT = (
    "The patch for {file_path} could not be applied: {error}. "
    "Provide the complete new content of the file using the `updateFile` function instead."
)

FRAGMENTS_PROMPT = """Extract the fragments of the files below that are relevant to: {fragment_prompt}

Call `extractFileFragments` with the exact fragments for each file.

{files}"""

COMPOUND_ACTION_PROMPT = (
    "Break the requested change down into individual file operations. Call `compoundActionList` "
    "with one action per operation, a unique `id` for each, and `dependsOn` for ordering."
)

COMPOUND_ACTION_ITEM_PROMPT = "Provide the arguments for action {id} using the `{tool}` function: {prompt}"

REASONING_PROMPT = """{prompt}

Relevant source code:
{source_code}

Respond with `reasoningInferenceResponse`."""

IMAGE_GENERATION_PROMPT = "Provide the image generation request using the `generateImage` function."

ACTION_ARGS_PROMPT = "Provide the details of this action using the `{tool}` function."
