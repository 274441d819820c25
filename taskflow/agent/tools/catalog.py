"""Names of the domain operations exposed by the task service."""

CREATE_TASK = "createTask"
UPDATE_TASK = "updateTask"
LIST_TASKS = "listTasks"
LIST_PROJECTS = "listProjects"
GET_PROJECT_DETAILS = "getProjectDetails"
CREATE_SPRINT = "createSprint"
LIST_SPRINTS = "listSprints"
CREATE_BUG = "createBug"
LIST_BUGS = "listBugs"
LIST_TEAM_MEMBERS = "listTeamMembers"
FIND_USER = "findUser"
GET_TASK_SUMMARY = "getTaskSummary"
GET_COMPLETION_SUMMARY = "getCompletionSummary"
GET_OVERDUE_TASKS = "getOverdueTasks"
GET_UPCOMING_DEADLINES = "getUpcomingDeadlines"
GET_PROJECT_HEALTH = "getProjectHealth"
GET_TEAM_WORKLOAD = "getTeamWorkload"

SYNTHETIC_ERROR = "error"
